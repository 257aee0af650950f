"""Shared fixtures for the umlink test suite."""

import pytest

from classfile_factory import annotation_type
from sample_project import (
    build_model, character_factory, iodevice_factory, keyboard_factory,
    keycode_factory, sample_class_factory,
)


@pytest.fixture
def keyboard_model():
    return build_model(keyboard_factory())


@pytest.fixture
def project_factories():
    """Classfile factories for the whole sample project, keyed by file name under com/example."""
    return {
        "Keyboard.class": keyboard_factory(),
        "KeyCode.class": keycode_factory(),
        "IODevice.class": iodevice_factory(),
        "IODevice$Character.class": character_factory(),
        "TestClass.class": sample_class_factory(),
        "UmlAggregate.class": annotation_type("com/example/UmlAggregate", "CLASS"),
        "Skip.class": annotation_type("com/example/Skip", "RUNTIME"),
        "SkipClass.class": annotation_type("com/example/SkipClass", "CLASS"),
    }


@pytest.fixture
def project_models(project_factories):
    return [build_model(factory) for factory in project_factories.values()]


@pytest.fixture
def classes_dir(tmp_path, project_factories):
    """The sample project written out as a javac output directory."""
    root = tmp_path / "classes"
    for file_name, factory in project_factories.items():
        factory.write(root / "com" / "example" / file_name)
    return root
