import logging

import pytest

from classfile_factory import Annotation, ClassfileFactory
from sample_project import SKIP, build_model, sample_class_factory
from umlink.model import Retention
from umlink.retention import RetentionResolver, is_excluded


@pytest.fixture
def test_class():
    return build_model(sample_class_factory())


def _field(model, name):
    return next(f for f in model.fields if f.name == name)


def _method(model, name):
    return next(m for m in model.methods if m.name == name)


def test_runtime_skip_excludes_member(test_class):
    hidden = _field(test_class, "hiddenField")
    assert is_excluded(hidden, "com.example.Skip", Retention.RUNTIME)
    # also consulting the CLASS table changes nothing
    assert is_excluded(hidden, "com.example.Skip", None)
    assert not is_excluded(_field(test_class, "visibleField"), "com.example.Skip", Retention.RUNTIME)


def test_class_skip_excludes_member(test_class):
    resolver = RetentionResolver("com.example.SkipClass", Retention.CLASS)
    assert resolver.is_excluded(_field(test_class, "classHiddenField"))
    assert resolver.is_excluded(_method(test_class, "classHiddenMethod"))
    assert not resolver.is_excluded(_field(test_class, "hiddenField"))


def test_retention_decides_which_table_is_searched():
    factory = ClassfileFactory("com/example/Device")
    factory.add_field("serial", "I", visible=[Annotation(SKIP)])
    [serial] = build_model(factory).fields

    assert not is_excluded(serial, "com.example.Skip", Retention.CLASS)
    assert is_excluded(serial, "com.example.Skip", Retention.RUNTIME)
    assert is_excluded(serial, "com.example.Skip", None)


def test_same_simple_name_in_different_packages():
    factory = ClassfileFactory("com/example/Device")
    factory.add_field("serial", "I", invisible=[Annotation("Lcom/example/a/Skip;")])
    [serial] = build_model(factory).fields

    assert is_excluded(serial, "com.example.a.Skip", Retention.CLASS)
    assert not is_excluded(serial, "com.example.b.Skip", Retention.RUNTIME)
    assert not is_excluded(serial, "com.example.b.Skip", None)


def test_visible_members(test_class):
    resolver = RetentionResolver("com.example.Skip", Retention.RUNTIME)
    assert [f.name for f in resolver.visible_fields(test_class)] == ["visibleField", "classHiddenField"]
    assert [m.name for m in resolver.visible_methods(test_class)] == ["visibleMethod", "classHiddenMethod"]


def test_excluded_class_has_no_visible_members():
    factory = ClassfileFactory("com/example/Hidden")
    factory.annotate(visible=[Annotation(SKIP)])
    factory.add_field("secret", "I")
    factory.add_method("reveal", "()V")
    model = build_model(factory)

    resolver = RetentionResolver("com.example.Skip")
    assert resolver.is_excluded(model)
    assert resolver.visible_fields(model) == []
    assert resolver.visible_methods(model) == []


def test_no_skip_annotation_excludes_nothing(test_class):
    resolver = RetentionResolver()
    assert not resolver.enabled
    assert len(resolver.visible_fields(test_class)) == 3
    assert not is_excluded(_field(test_class, "hiddenField"), None)


def test_source_retention_matches_nothing(test_class, caplog):
    with caplog.at_level(logging.WARNING):
        resolver = RetentionResolver("com.example.Skip", Retention.SOURCE)
    assert "SOURCE retention" in caplog.text
    assert not resolver.enabled
    assert not resolver.is_excluded(_field(test_class, "hiddenField"))
