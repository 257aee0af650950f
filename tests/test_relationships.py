import logging

import pytest

from classfile_factory import Annotation, ClassfileFactory, EnumArg
from sample_project import AGGREGATE, COMPOSE, SKIP, build_model
from umlink.descriptor import parse_field_descriptor
from umlink.model import RelationKind, RelationshipFact, Retention
from umlink.relationships import RelationshipInference, unwrap_target
from umlink.retention import RetentionResolver

ANNOTATIONS = {
    "com.example.UmlAggregate": RelationKind.AGGREGATION,
    "com.example.UmlCompose": RelationKind.COMPOSITION,
}


@pytest.fixture
def inference():
    return RelationshipInference(ANNOTATIONS)


def test_keyboard_aggregates_keycodes(keyboard_model, inference):
    assert inference.infer(keyboard_model) == [RelationshipFact(
        source="Keyboard",
        target="KeyCode",
        kind=RelationKind.AGGREGATION,
        self_multiplicity="1",
        other_multiplicity="0..*",
        label="contains",
    )]


def test_source_name_override(keyboard_model, inference):
    [fact] = inference.infer(keyboard_model, source_name="com.example.Keyboard")
    assert fact.source == "com.example.Keyboard"


@pytest.mark.parametrize("descriptor, expected", [
    ("Lcom/example/KeyCode;", "com.example.KeyCode"),
    ("[Lcom/example/KeyCode;", "com.example.KeyCode"),
    ("Ljava/util/List<Lcom/example/KeyCode;>;", "com.example.KeyCode"),
    ("Ljava/util/Set<+Lcom/example/KeyCode;>;", "com.example.KeyCode"),
    ("Ljava/util/Optional<Ljava/util/List<Lcom/example/KeyCode;>;>;", "com.example.KeyCode"),
    ("Ljava/util/Map<Ljava/lang/String;Lcom/example/KeyCode;>;", "java.util.Map"),
    ("I", None),
    ("[I", None),
    ("TT;", None),
    ("Ljava/util/List<*>;", None),
])
def test_unwrap_target(descriptor, expected):
    target = unwrap_target(parse_field_descriptor(descriptor))
    assert (target.qualified_name if target else None) == expected


def test_default_multiplicities(inference):
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("engine", "Lcom/example/Engine;", invisible=[Annotation(COMPOSE)])

    [fact] = inference.infer(build_model(factory))

    assert fact.kind == RelationKind.COMPOSITION
    assert (fact.self_multiplicity, fact.other_multiplicity, fact.label) == ("1", "1", None)


def test_empty_string_means_absent(inference):
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("wheels", "[Lcom/example/Wheel;", invisible=[
        Annotation(AGGREGATE, {"selfCard": "", "otherCard": "4"}),
    ])
    [fact] = inference.infer(build_model(factory))
    assert fact.self_multiplicity is None
    assert fact.other_multiplicity == "4"
    assert fact.target == "Wheel"


def test_numeric_card_is_rendered_as_text(inference):
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("wheels", "[Lcom/example/Wheel;", invisible=[Annotation(AGGREGATE, {"otherCard": 4})])
    [fact] = inference.infer(build_model(factory))
    assert fact.other_multiplicity == "4"


def test_non_literal_card_falls_back(inference, caplog):
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("wheels", "[Lcom/example/Wheel;", invisible=[
        Annotation(AGGREGATE, {"otherCard": EnumArg("Lcom/example/Card;", "MANY")}),
    ])
    with caplog.at_level(logging.WARNING):
        [fact] = inference.infer(build_model(factory))
    assert fact.other_multiplicity == "1"
    assert "otherCard" in caplog.text


def test_primitive_field_yields_nothing(inference):
    factory = ClassfileFactory("com/example/Counter")
    factory.add_field("count", "I", invisible=[Annotation(AGGREGATE)])
    assert inference.infer(build_model(factory)) == []


def test_unconfigured_annotations_yield_nothing(keyboard_model):
    assert RelationshipInference({}).infer(keyboard_model) == []
    assert RelationshipInference({"com.example.Other": RelationKind.LINK}).infer(keyboard_model) == []


def test_first_configured_annotation_wins():
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("engine", "Lcom/example/Engine;", invisible=[Annotation(AGGREGATE), Annotation(COMPOSE)])
    model = build_model(factory)

    compose_first = RelationshipInference({
        "com.example.UmlCompose": RelationKind.COMPOSITION,
        "com.example.UmlAggregate": RelationKind.AGGREGATION,
    })
    assert [f.kind for f in compose_first.infer(model)] == [RelationKind.COMPOSITION]
    assert [f.kind for f in RelationshipInference(ANNOTATIONS).infer(model)] == [RelationKind.AGGREGATION]


def test_skipped_field_yields_nothing():
    factory = ClassfileFactory("com/example/Car")
    factory.add_field("engine", "Lcom/example/Engine;", visible=[Annotation(SKIP)], invisible=[Annotation(COMPOSE)])
    factory.add_field("driver", "Lcom/example/Person;", invisible=[Annotation(COMPOSE)])

    resolver = RetentionResolver("com.example.Skip", Retention.RUNTIME)
    facts = RelationshipInference(ANNOTATIONS, resolver).infer(build_model(factory))

    assert [f.target for f in facts] == ["Person"]


def test_infer_all_keeps_model_order(keyboard_model, inference):
    car = ClassfileFactory("com/example/Car")
    car.add_field("engine", "Lcom/example/Engine;", invisible=[Annotation(COMPOSE)])

    facts = inference.infer_all([build_model(car), keyboard_model])

    assert [(f.source, f.target) for f in facts] == [("Car", "Engine"), ("Keyboard", "KeyCode")]
