import logging

import pytest

from classfile_factory import Annotation, ClassfileFactory
from sample_project import AGGREGATE, SKIP, build_model
from umlink.classfile import ACC_ABSTRACT, ACC_INTERFACE, ACC_PUBLIC
from umlink.diagram import Attribute, Diagram, Method, MethodParameter
from umlink.linker import DiagramLinker, merge, render_field, render_method, stereotypes_for
from umlink.mermaid_parser import parse_mermaid
from umlink.model import RelationKind, Retention
from umlink.relationships import RelationshipInference
from umlink.retention import RetentionResolver
from umlink.serializer import serialize_diagram, serialize_relation

AGGREGATION = {"com.example.UmlAggregate": RelationKind.AGGREGATION}


def linker_for(models, skip=None):
    resolver = RetentionResolver(skip, Retention.RUNTIME) if skip else RetentionResolver()
    return DiagramLinker(models, resolver, RelationshipInference(AGGREGATION, resolver))


def relation_lines(diagram):
    return [serialize_relation(r) for r in diagram.relations]


def test_aggregated_field_becomes_member_and_relationship():
    factory = ClassfileFactory("com/example/Keyboard")
    factory.add_field(
        "keys", "Ljava/util/List;", signature="Ljava/util/List<Lcom/example/KeyCode;>;",
        invisible=[Annotation(AGGREGATE, {"selfCard": "1", "otherCard": "0..*"})],
    )
    diagram = parse_mermaid("classDiagram\n  class Keyboard\n")

    merged, report = linker_for([build_model(factory)]).merge(diagram)

    keyboard = merged.find_class("Keyboard")
    assert [m.name for m in keyboard.members] == ["keys"]
    assert relation_lines(merged) == ['Keyboard "1" --> "0..*" KeyCode']
    assert report.inferred_relations == 1
    assert report.hierarchy_relations == 0


def test_merge_sample_project(project_models):
    diagram = parse_mermaid(
        "classDiagram\n"
        "  class Keyboard\n"
        "  class KeyCode\n"
        "  IODevice <|-- Keyboard\n"
    )

    merged, report = linker_for(project_models).merge(diagram)

    assert serialize_diagram(merged) == (
        "classDiagram\n"
        "  class Keyboard {\n"
        "    ~keys: List~KeyCode~\n"
        "    +Keyboard()\n"
        "    +getKeys() List~KeyCode~\n"
        "    +setKeys(keys: List~KeyCode~) void\n"
        "    +press(key: KeyCode) void\n"
        "    +getBufferSize() int\n"
        "  }\n"
        "  class KeyCode {\n"
        "    <<enum>>\n"
        "    ENTER\n"
        "    ESCAPE\n"
        "    +values() KeyCode[]$\n"
        "  }\n"
        "  class IODevice {\n"
        "    <<abstract>>\n"
        "    +getMajorNumber() Integer*\n"
        "  }\n"
        "  IODevice <|-- Keyboard\n"
        "  Keyboard ..|> `IODevice.Character`\n"
        '  Keyboard "1" --> "0..*" KeyCode : contains\n'
    )
    assert report.get_statistics() == {
        "linked_classes": 3,
        "unresolved_classes": 0,
        "excluded_classes": 0,
        "added_classes": 1,
        "inferred_relations": 1,
        "hierarchy_relations": 1,
        "suppressed_relations": 1,
    }
    assert report.graph["declared_edges"] == 1
    assert report.graph["inferred_edges"] == 2


def test_input_diagram_is_not_modified(keyboard_model):
    diagram = parse_mermaid("classDiagram\n  class Keyboard\n  Keyboard : +extra()\n")
    before = serialize_diagram(diagram)

    merged = merge(diagram, [keyboard_model])

    assert serialize_diagram(diagram) == before
    # authored members stay first
    assert [m.name for m in merged.find_class("Keyboard").members][:2] == ["extra", "keys"]


@pytest.mark.parametrize("authored", [
    "Keyboard --> KeyCode",
    "Keyboard o-- KeyCode",
    'Keyboard "1" --* "many" KeyCode',
])
def test_existing_relationship_suppresses_inferred_one(keyboard_model, authored):
    diagram = parse_mermaid(f"classDiagram\n  class Keyboard\n  {authored}\n")

    merged, report = linker_for([keyboard_model]).merge(diagram)

    assert [r.kind for r in merged.relations if {r.left, r.right} == {"Keyboard", "KeyCode"}] == [
        diagram.relations[0].kind
    ]
    assert report.suppressed_relations == 1


def test_reverse_relationship_does_not_suppress(keyboard_model):
    diagram = parse_mermaid("classDiagram\n  class Keyboard\n  KeyCode --> Keyboard\n")
    merged, report = linker_for([keyboard_model]).merge(diagram)
    assert len(merged.relations) == 4
    assert report.suppressed_relations == 0


def test_hierarchy_edges():
    animal = ClassfileFactory("com/example/Animal", access=ACC_PUBLIC | ACC_ABSTRACT)
    duck = ClassfileFactory("com/example/Duck", superclass="com/example/Animal", interfaces=["com/example/Swimmer"])
    swimmer = ClassfileFactory(
        "com/example/Swimmer", access=ACC_PUBLIC | ACC_INTERFACE | ACC_ABSTRACT,
        interfaces=["com/example/Mover"],
    )
    models = [build_model(f) for f in (animal, duck, swimmer)]

    merged, report = linker_for(models).merge(parse_mermaid(
        "classDiagram\n  class Duck\n  class Animal\n  class Swimmer\n"
    ))

    assert relation_lines(merged) == [
        "Duck --|> Animal",
        "Duck ..|> Swimmer",
        "Swimmer --|> Mover",
    ]
    assert report.hierarchy_relations == 3
    assert merged.find_class("Swimmer").annotations == ["interface"]


def test_hand_drawn_inheritance_is_kept():
    duck = ClassfileFactory("com/example/Duck", superclass="com/example/Animal")
    merged, report = linker_for([build_model(duck)]).merge(parse_mermaid(
        "classDiagram\n  Animal <|-- Duck\n"
    ))
    assert relation_lines(merged) == ["Animal <|-- Duck"]
    assert report.suppressed_relations == 1
    # Animal has no classfile, Duck is declared from the relationship
    assert report.unresolved == ["Animal"]
    assert report.added == ["Duck"]


def test_excluded_class_keeps_declaration_and_relations(keyboard_model):
    hidden = ClassfileFactory("com/example/Hidden")
    hidden.annotate(visible=[Annotation(SKIP)])
    hidden.add_field("keyboard", "Lcom/example/Keyboard;", invisible=[Annotation(AGGREGATE)])
    diagram = parse_mermaid("classDiagram\n  class Hidden\n  Hidden --> Keyboard\n")

    merged, report = linker_for([build_model(hidden), keyboard_model], skip="com.example.Skip").merge(diagram)

    decl = merged.find_class("Hidden")
    assert decl.members == [] and decl.annotations == []
    assert report.excluded == ["Hidden"]
    assert "Hidden --> Keyboard" in relation_lines(merged)
    assert not any(r.left == "Hidden" and r.right != "Keyboard" for r in merged.relations)


def test_unresolved_relation_names_are_not_declared(keyboard_model):
    merged, report = linker_for([keyboard_model]).merge(parse_mermaid(
        "classDiagram\n  class Keyboard\n  Keyboard --> Mouse\n"
    ))
    assert merged.find_class("Mouse") is None
    assert report.unresolved == ["Mouse"]


def test_lookup_by_qualified_and_diagram_name(keyboard_model):
    linker = DiagramLinker([keyboard_model])
    assert linker.lookup("com.example.Keyboard") is keyboard_model
    assert linker.lookup("Keyboard") is keyboard_model
    assert linker.resolve("Mouse") is None


def test_ambiguous_simple_name_is_unresolved(caplog):
    models = [build_model(ClassfileFactory(name)) for name in ("com/a/Foo", "com/b/Foo")]
    diagram = parse_mermaid("classDiagram\n  class Foo\n  class `com.b.Foo`\n")

    with caplog.at_level(logging.WARNING):
        merged, report = DiagramLinker(models).merge(diagram)

    assert "ambiguous" in caplog.text
    assert report.unresolved == ["Foo"]
    assert report.linked == ["com.b.Foo"]


def test_duplicate_models_are_rejected(keyboard_model):
    with pytest.raises(ValueError, match="Duplicate"):
        DiagramLinker([keyboard_model, keyboard_model])


def test_select_adds_unreferenced_classes(project_models):
    diagram = parse_mermaid(
        "---\n"
        "umlink:\n"
        "  select:\n"
        "    - field: package\n"
        "      pattern: com.example\n"
        "---\n"
        "classDiagram\n"
        "  class Keyboard\n"
    )

    merged, report = linker_for(project_models).merge(diagram)

    # annotation types are never selected
    assert report.added == ["KeyCode", "IODevice", "IODevice.Character", "TestClass"]
    assert [d.name for d in merged.classes] == ["Keyboard"] + report.added
    assert "Keyboard ..|> `IODevice.Character`" in relation_lines(merged)


def test_select_skips_excluded_classes(keyboard_model):
    hidden = ClassfileFactory("com/example/Hidden")
    hidden.annotate(visible=[Annotation(SKIP)])
    diagram = parse_mermaid(
        "---\numlink:\n  select:\n    - field: package\n      pattern: com.example\n---\nclassDiagram\n"
    )

    _, report = linker_for([build_model(hidden), keyboard_model], skip="com.example.Skip").merge(diagram)

    assert report.added == ["Keyboard"]


def test_group_package_places_added_classes_in_namespaces():
    models = [build_model(ClassfileFactory(name)) for name in (
        "com/example/devices/Keyboard", "com/example/input/KeyCode", "com/example/Main",
    )]
    diagram = parse_mermaid(
        "---\n"
        "umlink:\n"
        "  groupPackage: true\n"
        "  select:\n"
        "    - {field: package, pattern: com.example.devices}\n"
        "    - {field: package, pattern: com.example.input}\n"
        "    - {field: package, pattern: com.example}\n"
        "---\n"
        "classDiagram\n"
    )

    merged, _ = DiagramLinker(models).merge(diagram)

    assert [d.name for d in merged.classes] == ["Main"]
    assert [(n.name, [d.name for d in n.classes]) for n in merged.namespaces] == [
        ("devices", ["Keyboard"]),
        ("input", ["KeyCode"]),
    ]


def test_select_all_without_diagram(project_models):
    _, report = DiagramLinker(project_models).merge(Diagram(), select_all=True)
    assert report.added == ["Keyboard", "KeyCode", "IODevice", "IODevice.Character", "TestClass"]


def test_inheritance_cycle_is_reported(caplog):
    diagram = parse_mermaid("classDiagram\n  A <|-- B\n  B <|-- A\n")
    with caplog.at_level(logging.WARNING):
        DiagramLinker([]).merge(diagram)
    assert "Inheritance cycle" in caplog.text


def test_render_members(keyboard_model):
    keys = keyboard_model.fields[0]
    assert render_field(keys) == Attribute("keys", "List~KeyCode~", "~", postfix_type=True)

    methods = {m.name: m for m in keyboard_model.methods}
    assert render_method(methods["press"]) == Method(
        "press", [MethodParameter("key", "KeyCode", True)], "void", "+",
    )
    assert render_method(methods["Keyboard"]).return_type is None


def test_stereotypes(project_models):
    stereotypes = {m.diagram_name: stereotypes_for(m) for m in project_models}
    assert stereotypes["Keyboard"] == []
    assert stereotypes["KeyCode"] == ["enum"]
    assert stereotypes["IODevice"] == ["abstract"]
    assert stereotypes["IODevice.Character"] == ["interface"]
    assert stereotypes["Skip"] == ["annotation"]
