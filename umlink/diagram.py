"""
Mermaid class diagram data structures.

The diagram-side AST shared by the parser, the linker and the serializer.
Type strings are kept in Mermaid surface form (generics as "List~KeyCode~").
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .model import RelationKind


class LineStyle(Enum):
    SOLID = "solid"
    DOTTED = "dotted"


class Marker(Enum):
    """Which end of the line carries the arrow head / diamond."""
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


# token -> (kind, line, marker)
ARROWS: Dict[str, Tuple[RelationKind, LineStyle, Marker]] = {
    "<|--": (RelationKind.INHERITANCE, LineStyle.SOLID, Marker.LEFT),
    "--|>": (RelationKind.INHERITANCE, LineStyle.SOLID, Marker.RIGHT),
    "<|..": (RelationKind.REALIZATION, LineStyle.DOTTED, Marker.LEFT),
    "..|>": (RelationKind.REALIZATION, LineStyle.DOTTED, Marker.RIGHT),
    "*--": (RelationKind.COMPOSITION, LineStyle.SOLID, Marker.LEFT),
    "--*": (RelationKind.COMPOSITION, LineStyle.SOLID, Marker.RIGHT),
    "*..": (RelationKind.COMPOSITION, LineStyle.DOTTED, Marker.LEFT),
    "..*": (RelationKind.COMPOSITION, LineStyle.DOTTED, Marker.RIGHT),
    "o--": (RelationKind.AGGREGATION, LineStyle.SOLID, Marker.LEFT),
    "--o": (RelationKind.AGGREGATION, LineStyle.SOLID, Marker.RIGHT),
    "o..": (RelationKind.AGGREGATION, LineStyle.DOTTED, Marker.LEFT),
    "..o": (RelationKind.AGGREGATION, LineStyle.DOTTED, Marker.RIGHT),
    "<--": (RelationKind.ASSOCIATION, LineStyle.SOLID, Marker.LEFT),
    "-->": (RelationKind.ASSOCIATION, LineStyle.SOLID, Marker.RIGHT),
    "<..": (RelationKind.DEPENDENCY, LineStyle.DOTTED, Marker.LEFT),
    "..>": (RelationKind.DEPENDENCY, LineStyle.DOTTED, Marker.RIGHT),
    "--": (RelationKind.LINK, LineStyle.SOLID, Marker.NONE),
    "..": (RelationKind.LINK, LineStyle.DOTTED, Marker.NONE),
}

TOKENS: Dict[Tuple[RelationKind, LineStyle, Marker], str] = {v: k for k, v in ARROWS.items()}

VISIBILITY_SYMBOLS = ("+", "-", "#", "~")


@dataclass
class Attribute:
    name: str
    type: Optional[str] = None
    visibility: str = ""
    is_static: bool = False
    is_abstract: bool = False
    # "name: Type" instead of "Type name"
    postfix_type: bool = False


@dataclass
class MethodParameter:
    name: Optional[str] = None
    type: Optional[str] = None
    postfix_type: bool = False


@dataclass
class Method:
    name: str
    parameters: List[MethodParameter] = field(default_factory=list)
    return_type: Optional[str] = None
    visibility: str = ""
    is_static: bool = False
    is_abstract: bool = False


Member = Union[Attribute, Method]


@dataclass
class ClassDecl:
    name: str
    generic: Optional[str] = None
    label: Optional[str] = None
    annotations: List[str] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)

    @property
    def attributes(self) -> List[Attribute]:
        return [m for m in self.members if isinstance(m, Attribute)]

    @property
    def methods(self) -> List[Method]:
        return [m for m in self.members if isinstance(m, Method)]


@dataclass
class Namespace:
    name: str
    classes: List[ClassDecl] = field(default_factory=list)


@dataclass
class Relation:
    """A relationship line. `left`/`right` are as written; the arrow token is kept exactly."""
    left: str
    right: str
    kind: RelationKind
    line: LineStyle = LineStyle.SOLID
    marker: Marker = Marker.RIGHT
    left_cardinality: Optional[str] = None
    right_cardinality: Optional[str] = None
    label: Optional[str] = None

    @property
    def token(self) -> str:
        return TOKENS[(self.kind, self.line, self.marker)]

    @property
    def tail(self) -> str:
        """The end without the marker."""
        return self.right if self.marker == Marker.LEFT else self.left

    @property
    def head(self) -> str:
        """The end with the marker."""
        return self.left if self.marker == Marker.LEFT else self.right

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.tail, self.head)


@dataclass
class Diagram:
    """Parsed Mermaid class diagram."""
    frontmatter: Optional[Dict[str, Any]] = None
    direction: Optional[str] = None
    classes: List[ClassDecl] = field(default_factory=list)
    namespaces: List[Namespace] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)
    # note/style/classDef/cssClass/click/link/callback lines, verbatim
    statements: List[str] = field(default_factory=list)

    def iter_classes(self) -> Iterator[ClassDecl]:
        """All class declarations: top level first, then namespace by namespace."""
        yield from self.classes
        for namespace in self.namespaces:
            yield from namespace.classes

    def find_class(self, name: str) -> Optional[ClassDecl]:
        for decl in self.iter_classes():
            if decl.name == name:
                return decl
        return None

    def referenced_names(self) -> List[str]:
        """Declared class names followed by names only mentioned in relations, in order of appearance."""
        names: List[str] = []
        seen = set()
        for name in [d.name for d in self.iter_classes()] + [
            n for r in self.relations for n in (r.left, r.right)
        ]:
            if name not in seen:
                seen.add(name)
                names.append(name)
        return names

    def umlink_options(self) -> Dict[str, Any]:
        """The `umlink` section of the YAML frontmatter."""
        if not isinstance(self.frontmatter, dict):
            return {}
        options = self.frontmatter.get("umlink")
        return options if isinstance(options, dict) else {}

    def get_statistics(self) -> Dict[str, int]:
        classes = list(self.iter_classes())
        return {
            "total_classes": len(classes),
            "total_members": sum(len(c.members) for c in classes),
            "total_relationships": len(self.relations),
            "total_namespaces": len(self.namespaces),
        }
