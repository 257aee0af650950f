"""
Diagram linker.

Merges ClassModels into a parsed diagram: linked declarations receive their
fields and methods, annotated fields become relationships, and superclasses
and interfaces become extension/realization arrows. Authored content is
never removed or reordered.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .diagram import (
    ARROWS, Attribute, ClassDecl, Diagram, Method, MethodParameter,
    Namespace, Relation,
)
from .errors import UnresolvedTypeReference
from .filter import DiagramFilter, find_common_base_package
from .graph_builder import RelationGraph
from .model import (
    ClassKind, ClassModel, FieldModel, MethodModel, RelationKind, RelationshipFact, Visibility,
)
from .relationships import RelationshipInference
from .retention import RetentionResolver
from .serializer import escape_generics

logger = logging.getLogger(__name__)

# Supertypes every class of a kind has; drawing them only adds noise
IMPLICIT_SUPERTYPES = {
    "java.lang.Object",
    "java.lang.Enum",
    "java.lang.Record",
    "java.lang.annotation.Annotation",
}

VISIBILITY_MARKS = {
    Visibility.PUBLIC: "+",
    Visibility.PRIVATE: "-",
    Visibility.PROTECTED: "#",
    Visibility.PACKAGE: "~",
}

KIND_STEREOTYPES = {
    ClassKind.INTERFACE: "interface",
    ClassKind.ENUM: "enum",
    ClassKind.ANNOTATION: "annotation",
    ClassKind.RECORD: "record",
}

# Arrow drawn for each inferred relationship kind. Aggregation is drawn as a
# navigable association carrying the cardinalities: Keyboard "1" --> "0..*" KeyCode
FACT_ARROWS = {
    RelationKind.AGGREGATION: "-->",
    RelationKind.COMPOSITION: "--*",
    RelationKind.ASSOCIATION: "-->",
    RelationKind.LINK: "--",
    RelationKind.INHERITANCE: "--|>",
    RelationKind.REALIZATION: "..|>",
    RelationKind.DEPENDENCY: "..>",
}


@dataclass
class LinkReport:
    """What a merge did, for the CLI summary."""
    linked: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    inferred_relations: int = 0
    hierarchy_relations: int = 0
    suppressed_relations: int = 0
    # RelationGraph statistics of the merged diagram
    graph: Dict[str, float] = field(default_factory=dict)

    def get_statistics(self) -> Dict[str, int]:
        return {
            "linked_classes": len(self.linked),
            "unresolved_classes": len(self.unresolved),
            "excluded_classes": len(self.excluded),
            "added_classes": len(self.added),
            "inferred_relations": self.inferred_relations,
            "hierarchy_relations": self.hierarchy_relations,
            "suppressed_relations": self.suppressed_relations,
        }


def render_field(field_model: FieldModel) -> Attribute:
    """Attribute line for a field: "-keys: List~KeyCode~", or the bare name for enum constants."""
    modifiers = field_model.modifiers
    if field_model.is_enum_constant:
        return Attribute(name=field_model.name)
    return Attribute(
        name=field_model.name,
        type=escape_generics(field_model.type_name),
        visibility=VISIBILITY_MARKS[modifiers.visibility],
        is_static=modifiers.is_static,
        postfix_type=True,
    )


def render_method(method: MethodModel) -> Method:
    """Method line: "+press(code: KeyCode) boolean"; synthesised argN names are left out."""
    modifiers = method.modifiers
    parameters = [
        MethodParameter(
            name=param.name if param.has_name else None,
            type=escape_generics(param.type_name),
            postfix_type=param.has_name,
        )
        for param in method.parameters
    ]
    return_type = method.return_type_name
    return Method(
        name=method.name,
        parameters=parameters,
        return_type=escape_generics(return_type) if return_type else None,
        visibility=VISIBILITY_MARKS[modifiers.visibility],
        is_static=modifiers.is_static,
        is_abstract=modifiers.is_abstract,
    )


def stereotypes_for(model: ClassModel) -> List[str]:
    stereotype = KIND_STEREOTYPES.get(model.kind)
    if stereotype:
        return [stereotype]
    if model.is_abstract:
        return ["abstract"]
    return []


class DiagramLinker:
    """Links ClassModels into diagrams.

    Args:
        models: Loaded class models; fully qualified names must be unique.
        resolver: Skip configuration. Defaults to no skipping.
        inference: Relationship inference. Defaults to no annotated relationships.
    """

    def __init__(
        self,
        models: Iterable[ClassModel],
        resolver: Optional[RetentionResolver] = None,
        inference: Optional[RelationshipInference] = None,
    ):
        self.models: Dict[str, ClassModel] = {}
        for model in models:
            if model.name in self.models:
                raise ValueError(f"Duplicate class model: {model.name}")
            self.models[model.name] = model

        self.resolver = resolver or RetentionResolver()
        self.inference = inference or RelationshipInference({}, self.resolver)

        self._by_diagram_name: Dict[str, List[ClassModel]] = {}
        for model in self.models.values():
            self._by_diagram_name.setdefault(model.diagram_name, []).append(model)

    def lookup(self, name: str) -> ClassModel:
        """
        ClassModel for a diagram identifier.

        Tries the fully qualified name first, then the diagram name
        ("Keyboard", "Outer.Inner") when exactly one model carries it.

        Raises:
            UnresolvedTypeReference: no model, or more than one, matches.
        """
        model = self.models.get(name)
        if model is not None:
            return model
        candidates = self._by_diagram_name.get(name, [])
        if len(candidates) == 1:
            return candidates[0]
        if candidates:
            raise UnresolvedTypeReference(
                name, "ambiguous: " + ", ".join(sorted(m.name for m in candidates))
            )
        raise UnresolvedTypeReference(name)

    def resolve(self, name: str) -> Optional[ClassModel]:
        """lookup() that reports misses instead of raising."""
        try:
            return self.lookup(name)
        except UnresolvedTypeReference as e:
            if e.reason == UnresolvedTypeReference.NO_MATCH:
                logger.debug("%s", e)
            else:
                logger.warning("%s", e)
            return None

    def merge(self, diagram: Diagram, select_all: bool = False) -> Tuple[Diagram, LinkReport]:
        """
        Merge the loaded models into a copy of `diagram`.

        Classes the diagram does not mention are added when its frontmatter
        selects them, or, with `select_all` and no select list, all of them.

        Returns the enriched diagram and a LinkReport. The input is not modified.
        """
        result = copy.deepcopy(diagram)
        report = LinkReport()
        graph = RelationGraph(result)
        directives = DiagramFilter(result)

        # decl name -> model, in linking order
        linked: List[Tuple[str, ClassModel]] = []
        names: Dict[str, str] = {}

        for decl in list(result.iter_classes()):
            model = self.resolve(decl.name)
            if model is None:
                report.unresolved.append(decl.name)
                continue
            self._link_declaration(decl, model, report, linked, names)

        new_decls: List[Tuple[ClassDecl, ClassModel]] = []
        declared = {decl.name for decl in result.iter_classes()}
        relation_only = [name for name in result.referenced_names() if name not in declared]
        for name in relation_only:
            model = self.resolve(name)
            if model is None:
                report.unresolved.append(name)
                continue
            decl = ClassDecl(name=name)
            new_decls.append((decl, model))
            self._link_declaration(decl, model, report, linked, names)

        if directives.has_select or select_all:
            for model in directives.select_models(self.models.values(), select_all):
                if model.name in names or model.diagram_name in declared:
                    continue
                if self.resolver.is_excluded(model):
                    logger.debug("Selected class %s is excluded", model.name)
                    continue
                decl = ClassDecl(name=model.diagram_name)
                declared.add(decl.name)
                new_decls.append((decl, model))
                self._link_declaration(decl, model, report, linked, names)

        self._place_new_declarations(result, new_decls, directives)
        report.added = [decl.name for decl, _ in new_decls]

        for decl_name, model in linked:
            for fact in self._hierarchy_facts(decl_name, model, names):
                if self._add_fact(result, graph, fact, report):
                    report.hierarchy_relations += 1
            for fact in self.inference.infer(model, source_name=decl_name):
                fact = self._rename_target(fact, names)
                if self._add_fact(result, graph, fact, report):
                    report.inferred_relations += 1

        report.graph = graph.get_statistics()
        for cycle in graph.find_inheritance_cycles():
            logger.warning("Inheritance cycle in diagram: %s", " -> ".join(cycle))

        logger.info(
            "Linked %d classes (%d unresolved, %d excluded, %d added)",
            len(report.linked), len(report.unresolved), len(report.excluded), len(report.added),
        )
        return result, report

    def _link_declaration(
        self,
        decl: ClassDecl,
        model: ClassModel,
        report: LinkReport,
        linked: List[Tuple[str, ClassModel]],
        names: Dict[str, str],
    ):
        names.setdefault(model.name, decl.name)
        if self.resolver.is_excluded(model):
            logger.debug("%s is excluded, keeping declaration without members", model.name)
            report.excluded.append(decl.name)
            return

        for stereotype in stereotypes_for(model):
            if stereotype not in decl.annotations:
                decl.annotations.append(stereotype)
        if model.type_parameters and not decl.generic:
            decl.generic = ", ".join(model.type_parameters)
        for field_model in self.resolver.visible_fields(model):
            decl.members.append(render_field(field_model))
        for method in self.resolver.visible_methods(model):
            decl.members.append(render_method(method))

        logger.debug("Linked %s as %s (%d members)", model.name, decl.name, len(decl.members))
        report.linked.append(decl.name)
        linked.append((decl.name, model))

    def _place_new_declarations(
        self,
        result: Diagram,
        new_decls: List[Tuple[ClassDecl, ClassModel]],
        directives: DiagramFilter,
    ):
        base_package = ""
        if directives.group_package:
            base_package = find_common_base_package(m.package for m in self.models.values())

        namespaces = {namespace.name: namespace for namespace in result.namespaces}
        for decl, model in new_decls:
            namespace_name = directives.namespace_for(model, base_package)
            if namespace_name is None:
                result.classes.append(decl)
                continue
            namespace = namespaces.get(namespace_name)
            if namespace is None:
                namespace = Namespace(name=namespace_name)
                namespaces[namespace_name] = namespace
                result.namespaces.append(namespace)
            namespace.classes.append(decl)

    def _hierarchy_facts(self, decl_name: str, model: ClassModel, names: Dict[str, str]) -> List[RelationshipFact]:
        """Extension/realization facts; an interface's super-interfaces are extensions."""
        facts = []
        supertypes = []
        if model.superclass is not None:
            supertypes.append((model.superclass, RelationKind.INHERITANCE))
        interface_kind = RelationKind.INHERITANCE if model.kind in (
            ClassKind.INTERFACE, ClassKind.ANNOTATION,
        ) else RelationKind.REALIZATION
        supertypes.extend((iface, interface_kind) for iface in model.interfaces)

        for java_type, kind in supertypes:
            qualified = java_type.qualified_name
            if qualified in IMPLICIT_SUPERTYPES:
                continue
            target = names.get(qualified, java_type.simple_name)
            facts.append(RelationshipFact(
                source=decl_name,
                target=target,
                kind=kind,
                self_multiplicity=None,
                other_multiplicity=None,
            ))
        return facts

    def _rename_target(self, fact: RelationshipFact, names: Dict[str, str]) -> RelationshipFact:
        """Point the fact at the identifier the diagram already uses for its target, if any."""
        try:
            model = self.lookup(fact.target)
        except UnresolvedTypeReference:
            return fact
        target = names.get(model.name)
        if target is None or target == fact.target:
            return fact
        return RelationshipFact(
            source=fact.source,
            target=target,
            kind=fact.kind,
            self_multiplicity=fact.self_multiplicity,
            other_multiplicity=fact.other_multiplicity,
            label=fact.label,
        )

    def _add_fact(self, result: Diagram, graph: RelationGraph, fact: RelationshipFact, report: LinkReport) -> bool:
        if graph.has_pair(fact.source, fact.target):
            logger.debug("Relationship %s -> %s already present", fact.source, fact.target)
            report.suppressed_relations += 1
            return False

        kind, line, marker = ARROWS[FACT_ARROWS[fact.kind]]
        relation = Relation(
            left=fact.source,
            right=fact.target,
            kind=kind,
            line=line,
            marker=marker,
            left_cardinality=fact.self_multiplicity,
            right_cardinality=fact.other_multiplicity,
            label=fact.label,
        )
        result.relations.append(relation)
        graph.add_relation(relation)
        return True


def merge(
    diagram: Diagram,
    class_models: Iterable[ClassModel],
    skip_config: Optional[RetentionResolver] = None,
    inference: Optional[RelationshipInference] = None,
) -> Diagram:
    """Merge class models into a diagram and return the enriched copy."""
    merged, _ = DiagramLinker(class_models, skip_config, inference).merge(diagram)
    return merged
