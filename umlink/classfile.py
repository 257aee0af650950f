"""
JVM classfile decoder.

Decodes the raw byte layout of a compiled class into typed records
(constant pool, member tables, attribute tables). Attribute bodies are kept
as raw bytes; interpreting them is the model builder's job.
"""

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .errors import MalformedClassfile


MAGIC = 0xCAFEBABE

# Constant pool tags
CONSTANT_UTF8 = 1
CONSTANT_INTEGER = 3
CONSTANT_FLOAT = 4
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6
CONSTANT_CLASS = 7
CONSTANT_STRING = 8
CONSTANT_FIELDREF = 9
CONSTANT_METHODREF = 10
CONSTANT_INTERFACE_METHODREF = 11
CONSTANT_NAME_AND_TYPE = 12
CONSTANT_METHOD_HANDLE = 15
CONSTANT_METHOD_TYPE = 16
CONSTANT_DYNAMIC = 17
CONSTANT_INVOKE_DYNAMIC = 18
CONSTANT_MODULE = 19
CONSTANT_PACKAGE = 20

TAG_NAMES = {
    CONSTANT_UTF8: "Utf8",
    CONSTANT_INTEGER: "Integer",
    CONSTANT_FLOAT: "Float",
    CONSTANT_LONG: "Long",
    CONSTANT_DOUBLE: "Double",
    CONSTANT_CLASS: "Class",
    CONSTANT_STRING: "String",
    CONSTANT_FIELDREF: "Fieldref",
    CONSTANT_METHODREF: "Methodref",
    CONSTANT_INTERFACE_METHODREF: "InterfaceMethodref",
    CONSTANT_NAME_AND_TYPE: "NameAndType",
    CONSTANT_METHOD_HANDLE: "MethodHandle",
    CONSTANT_METHOD_TYPE: "MethodType",
    CONSTANT_DYNAMIC: "Dynamic",
    CONSTANT_INVOKE_DYNAMIC: "InvokeDynamic",
    CONSTANT_MODULE: "Module",
    CONSTANT_PACKAGE: "Package",
}

# Access flags (shared bit positions across class/field/method tables)
ACC_PUBLIC = 0x0001
ACC_PRIVATE = 0x0002
ACC_PROTECTED = 0x0004
ACC_STATIC = 0x0008
ACC_FINAL = 0x0010
ACC_SUPER = 0x0020
ACC_BRIDGE = 0x0040
ACC_VARARGS = 0x0080
ACC_INTERFACE = 0x0200
ACC_ABSTRACT = 0x0400
ACC_SYNTHETIC = 0x1000
ACC_ANNOTATION = 0x2000
ACC_ENUM = 0x4000


class ByteReader:
    """Big-endian cursor over a byte buffer. Reading past the end is malformed input."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def read(self, size: int) -> bytes:
        if size < 0 or self.offset + size > len(self.data):
            raise MalformedClassfile(
                f"unexpected end of data at offset {self.offset} (wanted {size} bytes)"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def _unpack(self, fmt: str, size: int) -> Any:
        return struct.unpack(fmt, self.read(size))[0]

    def u1(self) -> int:
        return self._unpack(">B", 1)

    def u2(self) -> int:
        return self._unpack(">H", 2)

    def u4(self) -> int:
        return self._unpack(">I", 4)

    def s4(self) -> int:
        return self._unpack(">i", 4)

    def s8(self) -> int:
        return self._unpack(">q", 8)

    def f4(self) -> float:
        return self._unpack(">f", 4)

    def f8(self) -> float:
        return self._unpack(">d", 8)


def decode_modified_utf8(raw: bytes) -> str:
    """Decode the JVM's modified UTF-8 (two-byte NUL, surrogate pairs as separate 3-byte units)."""
    text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
    # Recombine surrogate pairs into real code points
    return text.encode("utf-16", errors="surrogatepass").decode("utf-16")


@dataclass
class ConstantPoolEntry:
    """One constant pool slot. `value` holds literals, `refs` holds pool indices."""
    tag: int
    value: Any = None
    refs: Tuple[int, ...] = ()

    @property
    def kind(self) -> str:
        return TAG_NAMES.get(self.tag, f"tag{self.tag}")


@dataclass
class RawAttribute:
    name_index: int
    info: bytes


@dataclass
class RawMember:
    """A field_info or method_info entry."""
    access_flags: int
    name_index: int
    descriptor_index: int
    attributes: List[RawAttribute] = field(default_factory=list)


@dataclass
class RawClassFile:
    minor_version: int
    major_version: int
    # Index 0 and the upper half of long/double entries are None
    constant_pool: List[Optional[ConstantPoolEntry]]
    access_flags: int
    this_class: int
    super_class: int
    interfaces: List[int] = field(default_factory=list)
    fields: List[RawMember] = field(default_factory=list)
    methods: List[RawMember] = field(default_factory=list)
    attributes: List[RawAttribute] = field(default_factory=list)


def _read_constant(reader: ByteReader, tag: int) -> ConstantPoolEntry:
    if tag == CONSTANT_UTF8:
        length = reader.u2()
        try:
            value = decode_modified_utf8(reader.read(length))
        except UnicodeDecodeError as e:
            raise MalformedClassfile(f"invalid Utf8 constant: {e}")
        return ConstantPoolEntry(tag, value=value)
    if tag == CONSTANT_INTEGER:
        return ConstantPoolEntry(tag, value=reader.s4())
    if tag == CONSTANT_FLOAT:
        return ConstantPoolEntry(tag, value=reader.f4())
    if tag == CONSTANT_LONG:
        return ConstantPoolEntry(tag, value=reader.s8())
    if tag == CONSTANT_DOUBLE:
        return ConstantPoolEntry(tag, value=reader.f8())
    if tag in (CONSTANT_CLASS, CONSTANT_STRING, CONSTANT_METHOD_TYPE,
               CONSTANT_MODULE, CONSTANT_PACKAGE):
        return ConstantPoolEntry(tag, refs=(reader.u2(),))
    if tag in (CONSTANT_FIELDREF, CONSTANT_METHODREF, CONSTANT_INTERFACE_METHODREF,
               CONSTANT_NAME_AND_TYPE, CONSTANT_DYNAMIC, CONSTANT_INVOKE_DYNAMIC):
        return ConstantPoolEntry(tag, refs=(reader.u2(), reader.u2()))
    if tag == CONSTANT_METHOD_HANDLE:
        kind = reader.u1()
        return ConstantPoolEntry(tag, value=kind, refs=(reader.u2(),))
    raise MalformedClassfile(f"unknown constant pool tag {tag} at offset {reader.offset - 1}")


def _read_attributes(reader: ByteReader) -> List[RawAttribute]:
    attributes = []
    for _ in range(reader.u2()):
        name_index = reader.u2()
        length = reader.u4()
        attributes.append(RawAttribute(name_index=name_index, info=reader.read(length)))
    return attributes


def _read_members(reader: ByteReader) -> List[RawMember]:
    members = []
    for _ in range(reader.u2()):
        access_flags = reader.u2()
        name_index = reader.u2()
        descriptor_index = reader.u2()
        members.append(RawMember(
            access_flags=access_flags,
            name_index=name_index,
            descriptor_index=descriptor_index,
            attributes=_read_attributes(reader),
        ))
    return members


def decode_classfile(data: bytes) -> RawClassFile:
    """
    Decode classfile bytes into a RawClassFile.

    Raises:
        MalformedClassfile: bad magic, truncated data, unknown constant tag,
            or trailing bytes after the class attribute table.
    """
    reader = ByteReader(data)
    magic = reader.u4()
    if magic != MAGIC:
        raise MalformedClassfile(f"bad magic 0x{magic:08X}")

    minor = reader.u2()
    major = reader.u2()

    pool_count = reader.u2()
    constant_pool: List[Optional[ConstantPoolEntry]] = [None] * max(pool_count, 1)
    index = 1
    while index < pool_count:
        tag = reader.u1()
        constant_pool[index] = _read_constant(reader, tag)
        # Long and double take two slots
        index += 2 if tag in (CONSTANT_LONG, CONSTANT_DOUBLE) else 1
    if index != max(pool_count, 1):
        raise MalformedClassfile("wide constant overruns the constant pool")

    access_flags = reader.u2()
    this_class = reader.u2()
    super_class = reader.u2()
    interfaces = [reader.u2() for _ in range(reader.u2())]
    fields = _read_members(reader)
    methods = _read_members(reader)
    attributes = _read_attributes(reader)

    if not reader.at_end():
        raise MalformedClassfile(f"{reader.remaining} trailing bytes after class attributes")

    return RawClassFile(
        minor_version=minor,
        major_version=major,
        constant_pool=constant_pool,
        access_flags=access_flags,
        this_class=this_class,
        super_class=super_class,
        interfaces=interfaces,
        fields=fields,
        methods=methods,
        attributes=attributes,
    )


def read_classfile(path: Path) -> RawClassFile:
    """Read and decode a classfile from disk. I/O errors propagate."""
    data = Path(path).read_bytes()
    try:
        return decode_classfile(data)
    except MalformedClassfile as e:
        raise MalformedClassfile(str(e), source=str(path)) from e
