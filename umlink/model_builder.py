"""
Classfile model builder.

Turns a decoded RawClassFile into a ClassModel: resolves constant pool
references, parses descriptors and generic signatures, and decodes the
annotation, InnerClasses, MethodParameters and Record attributes.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from .classfile import (
    ACC_ABSTRACT, ACC_ANNOTATION, ACC_BRIDGE, ACC_ENUM, ACC_FINAL, ACC_INTERFACE,
    ACC_PRIVATE, ACC_PROTECTED, ACC_PUBLIC, ACC_STATIC, ACC_SYNTHETIC,
    CONSTANT_CLASS, CONSTANT_DOUBLE, CONSTANT_FLOAT, CONSTANT_INTEGER, CONSTANT_LONG,
    CONSTANT_STRING, CONSTANT_UTF8,
    ByteReader, ConstantPoolEntry, RawAttribute, RawClassFile, RawMember,
    decode_classfile,
)
from .descriptor import (
    JavaType, class_type_from_internal_name, parse_class_signature,
    parse_field_descriptor, parse_method_descriptor, parse_method_signature,
)
from .errors import AnnotationArgumentUnsupported, MalformedClassfile
from .model import (
    AnnotationModel, ClassKind, ClassModel, ClassValue, EnumValue, FieldModel,
    MethodModel, Modifiers, Parameter, Retention, Visibility,
)

logger = logging.getLogger(__name__)

RETENTION_ANNOTATION = "java.lang.annotation.Retention"

_ANONYMOUS_SEGMENT = re.compile(r"\$\d")


class ConstantPool:
    """Checked access to a decoded constant pool."""

    def __init__(self, entries: List[Optional[ConstantPoolEntry]]):
        self.entries = entries

    def entry(self, index: int, *tags: int) -> ConstantPoolEntry:
        if index <= 0 or index >= len(self.entries) or self.entries[index] is None:
            raise MalformedClassfile(f"constant pool index {index} out of range")
        entry = self.entries[index]
        if tags and entry.tag not in tags:
            raise MalformedClassfile(
                f"constant pool index {index} is {entry.kind}, expected "
                + "/".join(ConstantPoolEntry(tag).kind for tag in tags)
            )
        return entry

    def utf8(self, index: int) -> str:
        return self.entry(index, CONSTANT_UTF8).value

    def class_name(self, index: int) -> str:
        """Internal name of a CONSTANT_Class ("com/example/Keyboard")."""
        return self.utf8(self.entry(index, CONSTANT_CLASS).refs[0])


def _visibility(flags: int) -> Visibility:
    if flags & ACC_PUBLIC:
        return Visibility.PUBLIC
    if flags & ACC_PRIVATE:
        return Visibility.PRIVATE
    if flags & ACC_PROTECTED:
        return Visibility.PROTECTED
    return Visibility.PACKAGE


def _modifiers(flags: int) -> Modifiers:
    return Modifiers(
        visibility=_visibility(flags),
        is_static=bool(flags & ACC_STATIC),
        is_final=bool(flags & ACC_FINAL),
        is_abstract=bool(flags & ACC_ABSTRACT),
        is_synthetic=bool(flags & ACC_SYNTHETIC),
    )


def _decode_body(attribute_name: str, info: bytes, decode: Callable[[ByteReader], Any]) -> Any:
    """Decode an attribute body and check its declared length was consumed exactly."""
    reader = ByteReader(info)
    try:
        result = decode(reader)
    except MalformedClassfile as e:
        raise MalformedClassfile(f"{attribute_name}: {e}")
    if not reader.at_end():
        raise MalformedClassfile(
            f"{attribute_name} attribute declares {len(info)} bytes but {reader.offset} were consumed"
        )
    return result


class ClassModelBuilder:
    """Build ClassModel objects from decoded classfiles."""

    ANNOTATION_TABLES = {
        "RuntimeVisibleAnnotations": Retention.RUNTIME,
        "RuntimeInvisibleAnnotations": Retention.CLASS,
    }

    def __init__(self):
        self.pool: Optional[ConstantPool] = None
        self.warnings: List[str] = []

    def build_from_bytes(self, data: bytes, source: Optional[str] = None) -> ClassModel:
        return self.build(decode_classfile(data), source)

    def build(self, raw: RawClassFile, source: Optional[str] = None) -> ClassModel:
        """
        Build a ClassModel from a decoded classfile.

        Args:
            raw: Decoded classfile.
            source: Where it came from (used in warnings and errors).

        Raises:
            MalformedClassfile: bad constant pool index, descriptor, or attribute length.
        """
        self.pool = ConstantPool(raw.constant_pool)
        try:
            return self._build(raw, source)
        except MalformedClassfile as e:
            if source and e.source is None:
                raise MalformedClassfile(str(e), source=source) from e
            raise
        finally:
            self.pool = None

    def _build(self, raw: RawClassFile, source: Optional[str]) -> ClassModel:
        pool = self.pool
        internal_name = pool.class_name(raw.this_class)
        this_type = JavaType(internal_name)
        attributes = self._named_attributes(raw.attributes)

        annotations = self._annotations(attributes, source or internal_name)
        inner_entries = self._inner_classes(attributes)
        flags = raw.access_flags

        diagram_name = this_type.simple_name
        is_anonymous = bool(_ANONYMOUS_SEGMENT.search(internal_name.rsplit("/", 1)[-1]))
        nested_types: List[str] = []
        for inner, outer, inner_name, inner_flags in inner_entries:
            if inner == internal_name:
                # The entry describing this class carries its real source-level flags
                flags = inner_flags | (flags & (ACC_INTERFACE | ACC_ANNOTATION | ACC_ENUM))
                if inner_name is None or outer is None:
                    is_anonymous = True
                else:
                    diagram_name = f"{JavaType(outer).simple_name}.{inner_name}"
            elif outer == internal_name and inner_name is not None:
                nested_types.append(JavaType(inner).qualified_name)

        superclass = None
        if raw.super_class:
            superclass = class_type_from_internal_name(pool.class_name(raw.super_class))
        interfaces = [class_type_from_internal_name(pool.class_name(i)) for i in raw.interfaces]

        type_parameters: Tuple[str, ...] = ()
        if "Signature" in attributes:
            signature = parse_class_signature(self._signature(attributes["Signature"]))
            type_parameters = signature.type_parameters
            superclass = signature.superclass if raw.super_class else None
            if len(signature.interfaces) == len(interfaces):
                interfaces = list(signature.interfaces)

        if flags & ACC_ANNOTATION:
            kind = ClassKind.ANNOTATION
        elif flags & ACC_INTERFACE:
            kind = ClassKind.INTERFACE
        elif flags & ACC_ENUM:
            kind = ClassKind.ENUM
        elif "Record" in attributes:
            _decode_body("Record", attributes["Record"].info, self._record_components)
            kind = ClassKind.RECORD
        else:
            kind = ClassKind.CLASS

        model = ClassModel(
            name=this_type.qualified_name,
            kind=kind,
            modifiers=_modifiers(flags),
            superclass=superclass,
            interfaces=interfaces,
            annotations=annotations,
            nested_types=nested_types,
            type_parameters=type_parameters,
            diagram_name=diagram_name,
            is_anonymous=is_anonymous,
        )
        location = source or model.name
        model.fields = [
            field_model for field_model in (self._field(member, location) for member in raw.fields)
            if field_model is not None
        ]
        model.methods = [
            method for method in (self._method(member, model, location) for member in raw.methods)
            if method is not None
        ]
        logger.debug(
            "Built %s %s (%d fields, %d methods)",
            kind.value, model.name, len(model.fields), len(model.methods),
        )
        return model

    # ---------------- Members ----------------

    def _field(self, member: RawMember, location: str) -> Optional[FieldModel]:
        pool = self.pool
        name = pool.utf8(member.name_index)
        # $VALUES, this$0 and friends
        if member.access_flags & ACC_SYNTHETIC:
            return None
        attributes = self._named_attributes(member.attributes)
        java_type = parse_field_descriptor(pool.utf8(member.descriptor_index))
        if "Signature" in attributes:
            java_type = parse_field_descriptor(self._signature(attributes["Signature"]))
        return FieldModel(
            name=name,
            java_type=java_type,
            modifiers=_modifiers(member.access_flags),
            annotations=self._annotations(attributes, f"{location}.{name}"),
            is_enum_constant=bool(member.access_flags & ACC_ENUM),
        )

    def _method(self, member: RawMember, owner: ClassModel, location: str) -> Optional[MethodModel]:
        pool = self.pool
        name = pool.utf8(member.name_index)
        flags = member.access_flags
        attributes = self._named_attributes(member.attributes)
        params, return_type = parse_method_descriptor(pool.utf8(member.descriptor_index))

        # Static initialisers, compiler bridges and lambda bodies never appear in diagrams
        if name == "<clinit>" or name.startswith("lambda$") or flags & (ACC_SYNTHETIC | ACC_BRIDGE):
            return None

        if "Signature" in attributes:
            signature = parse_method_signature(self._signature(attributes["Signature"]))
            # Signatures omit synthetic/mandated parameters (enum and inner class constructors)
            if len(signature.parameters) == len(params):
                params = list(signature.parameters)
            return_type = signature.return_type

        names: List[Optional[str]] = [None] * len(params)
        if "MethodParameters" in attributes:
            declared = _decode_body("MethodParameters", attributes["MethodParameters"].info, self._method_parameters)
            if len(declared) == len(params):
                names = declared

        is_constructor = name == "<init>"
        return MethodModel(
            name=owner.diagram_name.rsplit(".", 1)[-1] if is_constructor else name,
            return_type=None if is_constructor else return_type,
            parameters=[
                Parameter(name=param_name or f"arg{i}", java_type=java_type, has_name=param_name is not None)
                for i, (param_name, java_type) in enumerate(zip(names, params))
            ],
            modifiers=_modifiers(flags),
            annotations=self._annotations(attributes, f"{location}.{name}"),
            is_constructor=is_constructor,
        )

    # ---------------- Attributes ----------------

    def _named_attributes(self, attributes: List[RawAttribute]) -> Dict[str, RawAttribute]:
        named: Dict[str, RawAttribute] = {}
        for attribute in attributes:
            named.setdefault(self.pool.utf8(attribute.name_index), attribute)
        return named

    def _signature(self, attribute: RawAttribute) -> str:
        return _decode_body("Signature", attribute.info, lambda r: self.pool.utf8(r.u2()))

    def _method_parameters(self, reader: ByteReader) -> List[Optional[str]]:
        names: List[Optional[str]] = []
        for _ in range(reader.u1()):
            name_index = reader.u2()
            reader.u2()  # access_flags
            names.append(self.pool.utf8(name_index) if name_index else None)
        return names

    def _inner_classes(self, attributes: Dict[str, RawAttribute]) -> List[Tuple[str, Optional[str], Optional[str], int]]:
        """(inner, outer, inner_name, flags) per InnerClasses entry; outer/inner_name are None when absent."""
        if "InnerClasses" not in attributes:
            return []

        def decode(reader: ByteReader):
            entries = []
            for _ in range(reader.u2()):
                inner_index, outer_index, name_index, flags = reader.u2(), reader.u2(), reader.u2(), reader.u2()
                entries.append((
                    self.pool.class_name(inner_index),
                    self.pool.class_name(outer_index) if outer_index else None,
                    self.pool.utf8(name_index) if name_index else None,
                    flags,
                ))
            return entries

        return _decode_body("InnerClasses", attributes["InnerClasses"].info, decode)

    def _record_components(self, reader: ByteReader) -> List[str]:
        names = []
        for _ in range(reader.u2()):
            names.append(self.pool.utf8(reader.u2()))
            self.pool.utf8(reader.u2())  # descriptor
            for _ in range(reader.u2()):
                reader.u2()
                reader.read(reader.u4())
        return names

    # ---------------- Annotations ----------------

    def _annotations(self, attributes: Dict[str, RawAttribute], location: str) -> List[AnnotationModel]:
        annotations: List[AnnotationModel] = []
        for table, retention in self.ANNOTATION_TABLES.items():
            if table not in attributes:
                continue

            def decode(reader: ByteReader, retention=retention):
                return [self._annotation(reader, retention, location) for _ in range(reader.u2())]

            annotations.extend(_decode_body(table, attributes[table].info, decode))
        return annotations

    def _annotation(self, reader: ByteReader, retention: Retention, location: str) -> AnnotationModel:
        type_name = parse_field_descriptor(self.pool.utf8(reader.u2())).qualified_name
        arguments: Dict[str, Any] = {}
        for _ in range(reader.u2()):
            arg_name = self.pool.utf8(reader.u2())
            try:
                arguments[arg_name] = self._element_value(reader, retention, location)
            except AnnotationArgumentUnsupported as e:
                message = f"{location}: @{type_name}({arg_name}=...) ignored: {e}"
                self.warnings.append(message)
                logger.warning(message)
        return AnnotationModel(type_name=type_name, retention=retention, arguments=arguments)

    def _element_value(self, reader: ByteReader, retention: Retention, location: str) -> Any:
        """Decode one element_value.

        The whole structure is always consumed before AnnotationArgumentUnsupported
        is raised, so the surrounding attribute stays in sync.
        """
        tag = chr(reader.u1())
        if tag in "BCDFIJSZs":
            return self._const_value(tag, reader.u2())
        if tag == "e":
            type_index, const_index = reader.u2(), reader.u2()
            try:
                enum_type = parse_field_descriptor(self.pool.utf8(type_index)).qualified_name
                return EnumValue(enum_type, self.pool.utf8(const_index))
            except MalformedClassfile as e:
                raise AnnotationArgumentUnsupported(f"enum constant: {e}")
        if tag == "c":
            class_index = reader.u2()
            try:
                descriptor = self.pool.utf8(class_index)
                if descriptor == "V":
                    return ClassValue("void")
                return ClassValue(parse_field_descriptor(descriptor).display())
            except MalformedClassfile as e:
                raise AnnotationArgumentUnsupported(f"class literal: {e}")
        if tag == "@":
            return self._annotation(reader, retention, location)
        if tag == "[":
            values = []
            failure = None
            for _ in range(reader.u2()):
                try:
                    values.append(self._element_value(reader, retention, location))
                except AnnotationArgumentUnsupported as e:
                    failure = e
            if failure is not None:
                raise AnnotationArgumentUnsupported(f"array element: {failure}")
            return tuple(values)
        raise MalformedClassfile(f"unknown element_value tag {tag!r}")

    def _const_value(self, tag: str, index: int) -> Any:
        expected = {
            "B": (CONSTANT_INTEGER,), "C": (CONSTANT_INTEGER,), "I": (CONSTANT_INTEGER,),
            "S": (CONSTANT_INTEGER,), "Z": (CONSTANT_INTEGER,), "J": (CONSTANT_LONG,),
            "F": (CONSTANT_FLOAT,), "D": (CONSTANT_DOUBLE,),
            "s": (CONSTANT_UTF8, CONSTANT_STRING),
        }[tag]
        try:
            entry = self.pool.entry(index, *expected)
            if entry.tag == CONSTANT_STRING:
                return self.pool.utf8(entry.refs[0])
        except MalformedClassfile as e:
            raise AnnotationArgumentUnsupported(str(e))
        if tag == "Z":
            return bool(entry.value)
        if tag == "C":
            if not 0 <= entry.value <= 0xFFFF:
                raise AnnotationArgumentUnsupported(f"char constant out of range: {entry.value}")
            return chr(entry.value)
        return entry.value


def retention_of(model: ClassModel) -> Optional[Retention]:
    """
    Retention policy declared by an annotation type.

    Returns None when the model is not an annotation type. An annotation type
    without @Retention has CLASS retention.
    """
    if model.kind != ClassKind.ANNOTATION:
        return None
    for annotation in model.annotations:
        if annotation.type_name != RETENTION_ANNOTATION:
            continue
        value = annotation.arguments.get("value")
        if isinstance(value, EnumValue):
            try:
                return Retention(value.const_name)
            except ValueError:
                logger.warning("%s: unknown retention policy %s", model.name, value.const_name)
                return None
    return Retention.CLASS
