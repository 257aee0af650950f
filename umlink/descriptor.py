"""
Descriptor and generic signature parsing.

Converts JVM field/method descriptors (e.g. "(ILjava/lang/String;)V") and
Signature attribute strings (e.g. "Ljava/util/List<Lcom/example/KeyCode;>;")
into JavaType values that render as readable type names.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import MalformedClassfile


PRIMITIVES = {
    "B": "byte",
    "C": "char",
    "D": "double",
    "F": "float",
    "I": "int",
    "J": "long",
    "S": "short",
    "Z": "boolean",
    "V": "void",
}


@dataclass(frozen=True)
class JavaType:
    """A declared Java type.

    `name` is the binary name with '/' separators for class types
    ("java/util/List", "com/example/IODevice$Character"), the keyword for
    primitives, or the variable name for type variables. Wildcards carry
    their bound (if any) as the single element of `args`.
    """
    name: str
    kind: str = "class"  # class | primitive | typevar | wildcard
    args: Tuple["JavaType", ...] = ()
    array_depth: int = 0
    bound: Optional[str] = None  # wildcards only: "extends" | "super" | None

    @property
    def is_primitive(self) -> bool:
        return self.kind == "primitive" and self.array_depth == 0

    @property
    def is_array(self) -> bool:
        return self.array_depth > 0

    @property
    def qualified_name(self) -> str:
        """Dotted source-level name, e.g. "com.example.IODevice.Character"."""
        return self.name.replace("/", ".").replace("$", ".")

    @property
    def simple_name(self) -> str:
        """Name without the package; nested types keep their outer name ("IODevice.Character")."""
        if self.kind != "class":
            return self.name
        return self.name.rsplit("/", 1)[-1].replace("$", ".")

    def element_type(self) -> "JavaType":
        """The type with all array dimensions removed."""
        if not self.array_depth:
            return self
        return JavaType(self.name, self.kind, self.args, 0, self.bound)

    def display(self) -> str:
        """Readable form: "List<KeyCode>", "int[]", "? extends Number"."""
        if self.kind == "wildcard":
            if self.bound and self.args:
                return f"? {self.bound} {self.args[0].display()}"
            return "?"
        text = self.simple_name
        if self.args:
            text += "<" + ", ".join(arg.display() for arg in self.args) + ">"
        return text + "[]" * self.array_depth

    def __str__(self) -> str:
        return self.display()


@dataclass(frozen=True)
class MethodSignature:
    type_parameters: Tuple[str, ...]
    parameters: Tuple[JavaType, ...]
    return_type: JavaType
    throws: Tuple[JavaType, ...] = ()


@dataclass(frozen=True)
class ClassSignature:
    type_parameters: Tuple[str, ...]
    superclass: JavaType
    interfaces: Tuple[JavaType, ...] = ()


class _SignatureReader:
    """Recursive-descent reader shared by descriptors and generic signatures."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def fail(self, message: str):
        raise MalformedClassfile(f"bad descriptor {self.text!r}: {message} at {self.pos}")

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, char: str):
        if self.peek() != char:
            self.fail(f"expected {char!r}")
        self.pos += 1

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def read_until(self, stops: str) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in stops:
            self.pos += 1
        if self.pos == start:
            self.fail("empty identifier")
        if self.pos >= len(self.text):
            self.fail("unterminated identifier")
        return self.text[start:self.pos]

    def type_signature(self, allow_void: bool = False) -> JavaType:
        depth = 0
        while self.peek() == "[":
            depth += 1
            self.pos += 1

        char = self.peek()
        if char in PRIMITIVES:
            if char == "V" and (depth or not allow_void):
                self.fail("void is not a value type")
            self.pos += 1
            return JavaType(PRIMITIVES[char], kind="primitive", array_depth=depth)
        if char == "L":
            base = self.class_type()
        elif char == "T":
            self.pos += 1
            base = JavaType(self.read_until(";"), kind="typevar")
            self.expect(";")
        else:
            self.fail(f"unexpected {char!r}" if char else "unexpected end")

        if depth:
            return JavaType(base.name, base.kind, base.args, depth)
        return base

    def class_type(self) -> JavaType:
        self.expect("L")
        name = self.read_until(";<.")
        args: Tuple[JavaType, ...] = self.type_arguments()
        # Inner class suffixes: Outer<T>.Inner<U>
        while self.peek() == ".":
            self.pos += 1
            name = f"{name}${self.read_until(';<.')}"
            args = self.type_arguments()
        self.expect(";")
        return JavaType(name, args=args)

    def type_arguments(self) -> Tuple[JavaType, ...]:
        if self.peek() != "<":
            return ()
        self.pos += 1
        args: List[JavaType] = []
        while self.peek() != ">":
            char = self.peek()
            if char == "*":
                self.pos += 1
                args.append(JavaType("?", kind="wildcard"))
            elif char in "+-":
                self.pos += 1
                bound = "extends" if char == "+" else "super"
                args.append(JavaType("?", kind="wildcard", args=(self.type_signature(),), bound=bound))
            elif char:
                args.append(self.type_signature())
            else:
                self.fail("unterminated type arguments")
        self.pos += 1
        if not args:
            self.fail("empty type arguments")
        return tuple(args)

    def type_parameters(self) -> Tuple[str, ...]:
        if self.peek() != "<":
            return ()
        self.pos += 1
        names: List[str] = []
        while self.peek() != ">":
            if not self.peek():
                self.fail("unterminated type parameters")
            names.append(self.read_until(":"))
            # class bound (may be empty) followed by interface bounds
            while self.peek() == ":":
                self.pos += 1
                if self.peek() in ("L", "T", "["):
                    self.type_signature()
        self.pos += 1
        return tuple(names)


def parse_field_descriptor(descriptor: str) -> JavaType:
    """Parse a field descriptor or field Signature ("I", "[Ljava/lang/String;", "TT;")."""
    reader = _SignatureReader(descriptor)
    result = reader.type_signature()
    if not reader.at_end():
        reader.fail("trailing characters")
    return result


def parse_method_descriptor(descriptor: str) -> Tuple[List[JavaType], JavaType]:
    """Parse a method descriptor into (parameters, return_type).

    "(ILjava/lang/String;)V" -> ([int, String], void)
    """
    signature = parse_method_signature(descriptor)
    return list(signature.parameters), signature.return_type


def parse_method_signature(signature: str) -> MethodSignature:
    """Parse a method Signature attribute (descriptors are a subset)."""
    reader = _SignatureReader(signature)
    type_params = reader.type_parameters()
    reader.expect("(")
    params: List[JavaType] = []
    while reader.peek() != ")":
        if reader.at_end():
            reader.fail("unterminated parameter list")
        params.append(reader.type_signature())
    reader.pos += 1
    return_type = reader.type_signature(allow_void=True)
    throws: List[JavaType] = []
    while reader.peek() == "^":
        reader.pos += 1
        throws.append(reader.type_signature())
    if not reader.at_end():
        reader.fail("trailing characters")
    return MethodSignature(type_params, tuple(params), return_type, tuple(throws))


def parse_class_signature(signature: str) -> ClassSignature:
    """Parse a class Signature attribute ("<T:Ljava/lang/Object;>Ljava/lang/Object;")."""
    reader = _SignatureReader(signature)
    type_params = reader.type_parameters()
    superclass = reader.class_type()
    interfaces: List[JavaType] = []
    while not reader.at_end():
        interfaces.append(reader.class_type())
    return ClassSignature(type_params, superclass, tuple(interfaces))


def class_type_from_internal_name(internal_name: str) -> JavaType:
    """JavaType for a CONSTANT_Class name. Array classes use descriptor syntax."""
    if internal_name.startswith("["):
        return parse_field_descriptor(internal_name)
    return JavaType(internal_name)
