"""
Mermaid class diagram serializer.

Renders a Diagram back to text in the grammar accepted by mermaid_parser,
so that parse(serialize(d)) == d for any parsed diagram.
"""

import re
from pathlib import Path
from typing import List

import yaml

from .diagram import Attribute, ClassDecl, Diagram, Member, Method, MethodParameter, Relation

_PLAIN_NAME = re.compile(r"\w+")


def quote_name(name: str) -> str:
    """Backtick names Mermaid would not accept bare ("IODevice.Character")."""
    return name if _PLAIN_NAME.fullmatch(name) else f"`{name}`"


def escape_generics(type_name: str) -> str:
    """Mermaid writes generics with tildes: List<KeyCode> -> List~KeyCode~."""
    return type_name.replace("<", "~").replace(">", "~")


def _typed(name: str, type_name: str, postfix: bool) -> str:
    if postfix:
        return f"{name}: {type_name}" if type_name else f"{name}:"
    if type_name:
        return f"{type_name} {name}"
    return name


def serialize_parameter(param: MethodParameter) -> str:
    if param.name is None:
        return param.type or ""
    return _typed(param.name, param.type, param.postfix_type)


def serialize_member(member: Member) -> str:
    text = member.visibility
    if isinstance(member, Method):
        text += f"{member.name}({', '.join(serialize_parameter(p) for p in member.parameters)})"
        if member.return_type:
            text += f" {member.return_type}"
    else:
        text += _typed(member.name, member.type, member.postfix_type)
    if member.is_abstract:
        text += "*"
    if member.is_static:
        text += "$"
    return text


def serialize_class(decl: ClassDecl, indent: str = "") -> List[str]:
    header = f"{indent}class {quote_name(decl.name)}"
    if decl.generic:
        header += f"~{decl.generic}~"
    if decl.label is not None:
        header += f'["{decl.label}"]'

    if not decl.annotations and not decl.members:
        return [header]

    lines = [header + " {"]
    for annotation in decl.annotations:
        lines.append(f"{indent}  <<{annotation}>>")
    for member in decl.members:
        lines.append(f"{indent}  {serialize_member(member)}")
    lines.append(f"{indent}}}")
    return lines


def serialize_relation(relation: Relation) -> str:
    parts = [quote_name(relation.left)]
    if relation.left_cardinality is not None:
        parts.append(f'"{relation.left_cardinality}"')
    parts.append(relation.token)
    if relation.right_cardinality is not None:
        parts.append(f'"{relation.right_cardinality}"')
    parts.append(quote_name(relation.right))
    text = " ".join(parts)
    if relation.label:
        text += f" : {relation.label}"
    return text


def serialize_diagram(diagram: Diagram) -> str:
    """Render a Diagram as Mermaid class diagram text."""
    lines: List[str] = []

    if diagram.frontmatter is not None:
        lines.append("---")
        if diagram.frontmatter:
            dumped = yaml.safe_dump(diagram.frontmatter, sort_keys=False, allow_unicode=True)
            lines.extend(dumped.rstrip("\n").split("\n"))
        lines.append("---")

    lines.append("classDiagram")
    if diagram.direction:
        lines.append(f"  direction {diagram.direction}")

    for decl in diagram.classes:
        lines.extend(serialize_class(decl, "  "))

    for namespace in diagram.namespaces:
        lines.append(f"  namespace {quote_name(namespace.name)} {{")
        for decl in namespace.classes:
            lines.extend(serialize_class(decl, "    "))
        lines.append("  }")

    for relation in diagram.relations:
        lines.append(f"  {serialize_relation(relation)}")

    for statement in diagram.statements:
        lines.append(f"  {statement}")

    return "\n".join(lines) + "\n"


def save_diagram(diagram: Diagram, output_path: Path):
    """
    Write a serialized diagram to a new file.

    Raises:
        FileExistsError: `output_path` already exists.
    """
    text = serialize_diagram(diagram)
    with open(output_path, "x", encoding="utf-8") as f:
        f.write(text)
