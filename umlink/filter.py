"""
Frontmatter-driven class selection.

Reads the `umlink` section of a diagram's YAML frontmatter:

    ---
    umlink:
      groupPackage: true
      select:
        - field: package
          pattern: com.example.devices
    ---

`select` pulls loaded classes that the diagram does not mention into the
output; `groupPackage` places those added classes into namespace blocks named
after their package.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .diagram import Diagram
from .model import ClassKind, ClassModel

logger = logging.getLogger(__name__)


class SelectField(Enum):
    """ClassModel properties a select filter can match on."""
    PACKAGE = "package"


def find_common_base_package(packages: Iterable[str]) -> str:
    """
    Longest common dotted prefix of the given packages.

    ["com.example.a", "com.example.b.c"] -> "com.example"; "" when nothing is shared.
    """
    split_packages = [p.split(".") for p in packages if p]
    if not split_packages:
        return ""

    common: List[str] = []
    for i, component in enumerate(split_packages[0]):
        if all(len(p) > i and p[i] == component for p in split_packages):
            common.append(component)
        else:
            break
    return ".".join(common)


def relative_namespace(base: str, package: str) -> str:
    """
    Namespace name for `package` relative to `base`.

    base="com.example", package="com.example.devices" -> "devices".
    Classes directly in the base package (or the default package) get "",
    meaning top level.
    """
    if not base:
        return package
    if package == base:
        return ""
    if package.startswith(base + "."):
        return package[len(base) + 1:]
    return package


class DiagramFilter:
    """Applies the `umlink` frontmatter directives of one diagram.

    Args:
        diagram: Parsed input diagram (only its frontmatter is read).
    """

    def __init__(self, diagram: Diagram):
        self.options: Dict[str, Any] = diagram.umlink_options()
        self.has_select = "select" in self.options
        self.package_patterns = self._package_patterns(self.options.get("select"))

    @staticmethod
    def _package_patterns(select: Any) -> List[str]:
        """Package patterns of a select list; a value that is not a list selects nothing."""
        if not isinstance(select, list):
            return []
        patterns = []
        for entry in select:
            if not isinstance(entry, dict):
                continue
            field_name = entry.get("field")
            pattern = entry.get("pattern")
            if not isinstance(field_name, str) or not isinstance(pattern, str):
                continue
            if field_name != SelectField.PACKAGE.value:
                logger.warning("Unsupported select field %r ignored", field_name)
                continue
            patterns.append(pattern)
        return patterns

    @property
    def group_package(self) -> bool:
        return self.options.get("groupPackage") is True

    def matches(self, model: ClassModel) -> bool:
        """True if `model`'s package equals any select pattern."""
        return model.package in self.package_patterns

    def select_models(self, models: Iterable[ClassModel], select_all: bool = False) -> List[ClassModel]:
        """
        Selected models in the given order.

        With `select_all`, a diagram without a select list picks every model.
        Annotation types and anonymous classes are never selected.
        """
        pick_all = select_all and not self.has_select
        return [
            model for model in models
            if model.kind != ClassKind.ANNOTATION and not model.is_anonymous
            and (pick_all or self.matches(model))
        ]

    def namespace_for(self, model: ClassModel, base_package: str) -> Optional[str]:
        """Namespace a newly added declaration goes into, or None for top level."""
        if not self.group_package:
            return None
        return relative_namespace(base_package, model.package) or None
