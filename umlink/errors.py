"""
Error types.

Recoverable conditions are raised close to where they happen and caught by
the stage that knows how to degrade; only DiagramGrammarError is fatal.
"""

from typing import Optional


class UmlinkError(Exception):
    """Base class for all umlink errors."""


class MalformedClassfile(UmlinkError):
    """A classfile could not be decoded (bad constant pool, truncated attribute, bad descriptor)."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class UnresolvedTypeReference(UmlinkError):
    """A diagram identifier has no matching class model."""

    NO_MATCH = "no matching classfile"

    def __init__(self, name: str, reason: str = NO_MATCH):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}")


class DiagramGrammarError(UmlinkError):
    """The diagram text cannot be parsed."""

    def __init__(self, message: str, line: int = 0):
        self.line = line
        if line:
            message = f"line {line}: {message}"
        super().__init__(message)


class AnnotationArgumentUnsupported(UmlinkError):
    """An annotation argument value cannot be decoded to a literal."""
