"""
Annotation retention resolver.

Decides whether a type or member is excluded from the diagram because it
carries the configured skip annotation. The skip annotation's own retention
policy decides which attribute table is consulted: RUNTIME annotations live
in RuntimeVisibleAnnotations, CLASS annotations in RuntimeInvisibleAnnotations.
"""

import logging
from typing import Iterable, Optional, Union

from .model import AnnotationModel, ClassModel, FieldModel, MethodModel, Retention

logger = logging.getLogger(__name__)

Annotated = Union[ClassModel, FieldModel, MethodModel]


def is_excluded(
    target: Annotated,
    skip_annotation: Optional[str],
    skip_retention: Optional[Retention] = None,
) -> bool:
    """
    True if `target` carries the skip annotation.

    Args:
        target: Class, field or method model.
        skip_annotation: Fully qualified annotation name, or None to disable skipping.
        skip_retention: Retention declared by the skip annotation itself; None
            when unknown, in which case both tables are consulted.

    Matching is by exact fully qualified name only.
    """
    if not skip_annotation:
        return False
    return any(
        annotation.type_name == skip_annotation
        for annotation in _visible_annotations(target.annotations, skip_retention)
    )


def _visible_annotations(
    annotations: Iterable[AnnotationModel],
    retention: Optional[Retention],
) -> Iterable[AnnotationModel]:
    if retention is None:
        return annotations
    return (a for a in annotations if a.retention == retention)


class RetentionResolver:
    """is_excluded bound to one skip configuration."""

    def __init__(self, skip_annotation: Optional[str] = None, retention: Optional[Retention] = None):
        self.skip_annotation = skip_annotation
        self.retention = retention
        if skip_annotation and retention == Retention.SOURCE:
            logger.warning(
                "Skip annotation %s has SOURCE retention and is never present in classfiles; "
                "nothing will be skipped", skip_annotation,
            )

    @property
    def enabled(self) -> bool:
        return bool(self.skip_annotation) and self.retention != Retention.SOURCE

    def is_excluded(self, target: Annotated) -> bool:
        if not self.enabled:
            return False
        return is_excluded(target, self.skip_annotation, self.retention)

    def visible_fields(self, model: ClassModel):
        """Fields that survive skipping; none if the class itself is excluded."""
        if self.is_excluded(model):
            return []
        return [f for f in model.fields if not self.is_excluded(f)]

    def visible_methods(self, model: ClassModel):
        if self.is_excluded(model):
            return []
        return [m for m in model.methods if not self.is_excluded(m)]
