"""
Relationship inference.

Turns cardinality-carrying field annotations (e.g. @UmlAggregate(selfCard="1",
otherCard="0..*")) into RelationshipFact objects.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .descriptor import JavaType
from .model import ClassModel, FieldModel, RelationKind, RelationshipFact
from .retention import RetentionResolver

logger = logging.getLogger(__name__)

# Wrappers whose single type argument is the real relationship target
COLLECTION_TYPES = {
    "java.lang.Iterable",
    "java.util.Collection",
    "java.util.List",
    "java.util.Set",
    "java.util.SortedSet",
    "java.util.NavigableSet",
    "java.util.Queue",
    "java.util.Deque",
    "java.util.Optional",
    "java.util.ArrayList",
    "java.util.LinkedList",
    "java.util.HashSet",
    "java.util.LinkedHashSet",
    "java.util.TreeSet",
    "java.util.ArrayDeque",
    "java.util.Vector",
    "java.util.Stack",
}

SELF_CARD = "selfCard"
OTHER_CARD = "otherCard"
LABEL = "label"

DEFAULT_SELF_CARD = "1"
DEFAULT_OTHER_CARD = "1"


def unwrap_target(java_type: JavaType) -> Optional[JavaType]:
    """
    The type a field points at: arrays and collection wrappers are stripped.

    List<KeyCode> -> KeyCode, KeyCode[] -> KeyCode, int -> None.
    """
    current = java_type.element_type()
    while current.kind == "class" and current.qualified_name in COLLECTION_TYPES and len(current.args) == 1:
        arg = current.args[0]
        if arg.kind == "wildcard":
            if not arg.args:
                return None
            arg = arg.args[0]
        current = arg.element_type()
    if current.kind != "class":
        return None
    return current


def _card(value: Any, default: Optional[str]) -> Optional[str]:
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value or None
    return default


class RelationshipInference:
    """Infer relationships from annotated fields.

    Args:
        annotations: Fully qualified annotation name -> relation kind. Order
            matters: when a field carries several, the first one listed here counts.
        resolver: Skip configuration; excluded classes and fields yield nothing.
    """

    def __init__(
        self,
        annotations: Dict[str, RelationKind],
        resolver: Optional[RetentionResolver] = None,
    ):
        self.annotations = {name: kind for name, kind in annotations.items() if name}
        self.resolver = resolver or RetentionResolver()

    def infer(self, model: ClassModel, source_name: Optional[str] = None) -> List[RelationshipFact]:
        """Facts for one class, in field declaration order."""
        if not self.annotations:
            return []
        source = source_name or model.diagram_name
        facts = []
        for field_model in self.resolver.visible_fields(model):
            fact = self._fact_for_field(source, field_model)
            if fact is not None:
                facts.append(fact)
        return facts

    def infer_all(self, models: Iterable[ClassModel]) -> List[RelationshipFact]:
        facts: List[RelationshipFact] = []
        for model in models:
            facts.extend(self.infer(model))
        return facts

    def _fact_for_field(self, source: str, field_model: FieldModel) -> Optional[RelationshipFact]:
        attached = {a.type_name: a for a in reversed(field_model.annotations)}
        for annotation_name, kind in self.annotations.items():
            annotation = attached.get(annotation_name)
            if annotation is None:
                continue

            target = unwrap_target(field_model.java_type)
            if target is None:
                logger.debug(
                    "%s.%s: @%s on non-class type %s ignored",
                    source, field_model.name, annotation.simple_name, field_model.type_name,
                )
                return None

            args = annotation.arguments
            for key in (SELF_CARD, OTHER_CARD, LABEL):
                if key in args and _card(args[key], None) is None and args[key] != "":
                    logger.warning(
                        "%s.%s: @%s(%s=%r) is not a literal, using default",
                        source, field_model.name, annotation.simple_name, key, args[key],
                    )
            return RelationshipFact(
                source=source,
                target=target.simple_name,
                kind=kind,
                self_multiplicity=_card(args.get(SELF_CARD), DEFAULT_SELF_CARD),
                other_multiplicity=_card(args.get(OTHER_CARD), DEFAULT_OTHER_CARD),
                label=_card(args.get(LABEL), None),
            )
        return None
