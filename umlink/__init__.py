"""
umlink: link Mermaid class diagrams with compiled Java classes.

Fills hand-written class diagrams with the fields, methods and relationships
found in classfiles, leaving out whatever carries a skip annotation.
"""

__version__ = "0.1.0"

from .config import LinkConfig, load_config
from .errors import (
    AnnotationArgumentUnsupported,
    DiagramGrammarError,
    MalformedClassfile,
    UmlinkError,
    UnresolvedTypeReference,
)
from .linker import DiagramLinker, LinkReport, merge
from .loader import ClassfileLoader
from .mermaid_parser import MermaidParser, parse_mermaid
from .model_builder import ClassModelBuilder, retention_of
from .relationships import RelationshipInference
from .retention import RetentionResolver, is_excluded
from .serializer import serialize_diagram

__all__ = [
    "AnnotationArgumentUnsupported",
    "ClassModelBuilder",
    "ClassfileLoader",
    "DiagramGrammarError",
    "DiagramLinker",
    "LinkConfig",
    "LinkReport",
    "MalformedClassfile",
    "MermaidParser",
    "RelationshipInference",
    "RetentionResolver",
    "UmlinkError",
    "UnresolvedTypeReference",
    "is_excluded",
    "load_config",
    "merge",
    "parse_mermaid",
    "retention_of",
    "serialize_diagram",
]
