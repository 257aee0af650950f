"""
Semantic class model.

Self-contained view of compiled types with every constant pool reference
resolved. Nothing here knows about diagrams.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .descriptor import JavaType


class ClassKind(Enum):
    CLASS = "class"
    INTERFACE = "interface"
    ENUM = "enum"
    ANNOTATION = "annotation"
    RECORD = "record"


class Retention(Enum):
    """Where an annotation ends up in the classfile."""
    RUNTIME = "RUNTIME"    # RuntimeVisibleAnnotations
    CLASS = "CLASS"        # RuntimeInvisibleAnnotations
    SOURCE = "SOURCE"      # discarded by the compiler


class Visibility(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
    PACKAGE = "package"


class RelationKind(Enum):
    AGGREGATION = "aggregation"
    COMPOSITION = "composition"
    ASSOCIATION = "association"
    LINK = "link"
    INHERITANCE = "inheritance"
    REALIZATION = "realization"
    DEPENDENCY = "dependency"


@dataclass(frozen=True)
class Modifiers:
    visibility: Visibility = Visibility.PACKAGE
    is_static: bool = False
    is_final: bool = False
    is_abstract: bool = False
    is_synthetic: bool = False


@dataclass(frozen=True)
class EnumValue:
    """An enum constant used as an annotation argument, kept unevaluated."""
    type_name: str
    const_name: str

    def __str__(self) -> str:
        return f"{self.type_name.rsplit('.', 1)[-1]}.{self.const_name}"


@dataclass(frozen=True)
class ClassValue:
    """A class literal used as an annotation argument."""
    type_name: str

    def __str__(self) -> str:
        return f"{self.type_name}.class"


@dataclass
class AnnotationModel:
    """An annotation attached to a type or member.

    `type_name` is dotted and fully qualified ("com.example.Skip").
    `retention` records the attribute table it was decoded from.
    """
    type_name: str
    retention: Retention
    arguments: Dict[str, Any] = field(default_factory=dict)

    @property
    def simple_name(self) -> str:
        return self.type_name.rsplit(".", 1)[-1]


@dataclass
class FieldModel:
    name: str
    java_type: JavaType
    modifiers: Modifiers = field(default_factory=Modifiers)
    annotations: List[AnnotationModel] = field(default_factory=list)
    is_enum_constant: bool = False

    @property
    def type_name(self) -> str:
        """Readable declared type, generic when a Signature was present ("List<KeyCode>")."""
        return self.java_type.display()


@dataclass
class Parameter:
    name: str
    java_type: JavaType
    # False when the name was synthesised (argN)
    has_name: bool = True

    @property
    def type_name(self) -> str:
        return self.java_type.display()


@dataclass
class MethodModel:
    name: str
    return_type: Optional[JavaType]  # None for constructors
    parameters: List[Parameter] = field(default_factory=list)
    modifiers: Modifiers = field(default_factory=Modifiers)
    annotations: List[AnnotationModel] = field(default_factory=list)
    is_constructor: bool = False

    @property
    def return_type_name(self) -> Optional[str]:
        return self.return_type.display() if self.return_type else None


@dataclass
class ClassModel:
    """A compiled type. Identity is the fully qualified (dotted) name."""
    name: str
    kind: ClassKind
    modifiers: Modifiers = field(default_factory=Modifiers)
    superclass: Optional[JavaType] = None
    interfaces: List[JavaType] = field(default_factory=list)
    fields: List[FieldModel] = field(default_factory=list)
    methods: List[MethodModel] = field(default_factory=list)
    annotations: List[AnnotationModel] = field(default_factory=list)
    nested_types: List[str] = field(default_factory=list)
    type_parameters: Tuple[str, ...] = ()
    # Simple name as written in diagrams; "Outer.Inner" for nested types
    diagram_name: str = ""
    is_anonymous: bool = False

    def __post_init__(self):
        if not self.diagram_name:
            self.diagram_name = self.name.rsplit(".", 1)[-1]

    @property
    def package(self) -> str:
        """Dotted package name ("" for the default package)."""
        suffix = "." + self.diagram_name
        if self.name.endswith(suffix):
            return self.name[:-len(suffix)]
        return ""

    @property
    def superclass_name(self) -> Optional[str]:
        return self.superclass.qualified_name if self.superclass else None

    @property
    def interface_names(self) -> List[str]:
        return [iface.qualified_name for iface in self.interfaces]

    @property
    def is_abstract(self) -> bool:
        return self.modifiers.is_abstract and self.kind == ClassKind.CLASS


@dataclass(frozen=True)
class RelationshipFact:
    """A relationship derived from field annotations or type hierarchy (never authored)."""
    source: str
    target: str
    kind: RelationKind
    self_multiplicity: Optional[str] = "1"
    other_multiplicity: Optional[str] = "1"
    label: Optional[str] = None
