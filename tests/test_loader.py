import logging
from pathlib import Path

import pytest

from classfile_factory import Annotation, ClassfileFactory, RawElement, u2
from umlink.loader import ClassfileLoader, is_anonymous_classfile


@pytest.mark.parametrize("name, expected", [
    ("Keyboard.class", False),
    ("Keyboard$1.class", True),
    ("Keyboard$Inner$12.class", True),
    ("IODevice$Character.class", False),
    ("Keyboard$1Local.class", False),
])
def test_is_anonymous_classfile(name, expected):
    assert is_anonymous_classfile(Path(name)) == expected


def test_load_directory(classes_dir):
    loader = ClassfileLoader()
    assert loader.load_path(classes_dir) == 8

    names = [m.name for m in loader.get_models()]
    assert names == sorted(names)
    assert "com.example.IODevice.Character" in names
    assert loader.get_statistics() == {
        "loaded": 8,
        "malformed": 0,
        "anonymous_skipped": 0,
        "duplicates_skipped": 0,
    }


def test_load_single_file(classes_dir):
    loader = ClassfileLoader()
    assert loader.load_path(classes_dir / "com" / "example" / "Keyboard.class") == 1
    assert list(loader.models) == ["com.example.Keyboard"]


def test_anonymous_classfiles_are_skipped(tmp_path):
    ClassfileFactory("com/example/Keyboard$1").write(tmp_path / "Keyboard$1.class")
    loader = ClassfileLoader()
    assert loader.load_path(tmp_path) == 0
    assert loader.anonymous_skipped == 1


def test_malformed_classfile_is_skipped(tmp_path, caplog):
    ClassfileFactory("com/example/Good").write(tmp_path / "Good.class")
    (tmp_path / "Bad.class").write_bytes(b"\xca\xfe\xba\xbe\x00")

    loader = ClassfileLoader()
    with caplog.at_level(logging.WARNING):
        assert loader.load_path(tmp_path) == 1

    assert loader.malformed == [tmp_path / "Bad.class"]
    assert "Bad.class" in caplog.text
    assert list(loader.models) == ["com.example.Good"]


def test_bad_annotation_argument_keeps_the_class(tmp_path):
    factory = ClassfileFactory("com/example/Tagged")
    factory.add_field("key", "C", invisible=[
        Annotation("Lcom/example/Tag;", {"c": RawElement(b"C" + u2(factory.integer(-1)))}),
    ])
    factory.write(tmp_path / "Tagged.class")

    loader = ClassfileLoader()
    assert loader.load_path(tmp_path) == 1
    assert loader.models["com.example.Tagged"].fields[0].annotations[0].arguments == {}


def test_duplicate_class_is_skipped(tmp_path, caplog):
    factory = ClassfileFactory("com/example/Keyboard")
    factory.write(tmp_path / "a" / "Keyboard.class")
    factory.write(tmp_path / "b" / "Keyboard.class")

    loader = ClassfileLoader()
    with caplog.at_level(logging.WARNING):
        loader.load_path(tmp_path)

    assert loader.duplicates_skipped == 1
    assert "Duplicate class com.example.Keyboard" in caplog.text


def test_missing_include_path(tmp_path):
    with pytest.raises(FileNotFoundError, match="Missing include path"):
        ClassfileLoader().load_path(tmp_path / "nope")


def test_non_classfile_is_ignored(tmp_path, caplog):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    with caplog.at_level(logging.WARNING):
        assert ClassfileLoader().load_path(path) == 0
    assert "not a .class file" in caplog.text
