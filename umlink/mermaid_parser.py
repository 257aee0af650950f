"""
Mermaid class diagram parser.

Parses the `classDiagram` subset umlink reads and writes into a Diagram.
Anything outside that subset is a DiagramGrammarError.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from .diagram import (
    ARROWS, Attribute, ClassDecl, Diagram, Member, Method, MethodParameter,
    Namespace, Relation, VISIBILITY_SYMBOLS,
)
from .errors import DiagramGrammarError


NAME = r"`[^`]+`|\w+(?:\.\w+)*"
_ARROW = "|".join(re.escape(token) for token in sorted(ARROWS, key=len, reverse=True))

HEADER_RE = re.compile(r"^classDiagram(?:-v2)?$")
DIRECTION_RE = re.compile(r"^direction\s+(TB|TD|BT|LR|RL)$")
NAMESPACE_RE = re.compile(rf"^namespace\s+(?P<name>{NAME})\s*\{{$")
CLASS_RE = re.compile(
    rf"^class\s+(?P<name>{NAME})"
    r"(?:\s*~(?P<generic>[^~]+)~)?"
    r'(?:\s*\["(?P<label>[^"]*)"\])?'
    r"\s*(?P<open>\{)?\s*(?P<close>\})?$"
)
ANNOTATION_RE = re.compile(r"^<<(?P<annotation>[^<>]+)>>$")
ANNOTATION_LINE_RE = re.compile(rf"^<<(?P<annotation>[^<>]+)>>\s*(?P<name>{NAME})$")
RELATION_RE = re.compile(
    rf"^(?P<left>{NAME})\s*"
    r'(?:"(?P<lcard>[^"]*)"\s*)?'
    rf"(?P<arrow>{_ARROW})\s*"
    r'(?:"(?P<rcard>[^"]*)"\s*)?'
    rf"(?P<right>{NAME})"
    r"(?:\s*:\s*(?P<label>.*))?$"
)
INLINE_MEMBER_RE = re.compile(rf"^(?P<name>{NAME})\s*:\s*(?P<member>.+)$")
METHOD_RE = re.compile(r"^(?P<name>[^(]+?)\s*\((?P<params>.*)\)\s*(?P<rest>.*)$")

PASSTHROUGH_KEYWORDS = ("note", "style", "classDef", "cssClass", "click", "link", "callback")


def unquote_name(name: str) -> str:
    if len(name) >= 2 and name.startswith("`") and name.endswith("`"):
        return name[1:-1]
    return name


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split on separators outside generic brackets (`~...~` or `<...>`).

    A tilde followed by a type name or wildcard opens a level; any other
    tilde closes one, so `Map~String, Map~String, Integer~~` stays whole.
    """
    parts: List[str] = []
    current = []
    depth = 0
    tildes = 0
    for index, char in enumerate(text):
        if char == "~":
            following = text[index + 1:index + 2]
            if following and (following.isalnum() or following in "_$?"):
                tildes += 1
            else:
                tildes = max(0, tildes - 1)
        elif char == "<":
            depth += 1
        elif char == ">":
            depth = max(0, depth - 1)
        if char == separator and depth == 0 and tildes == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _split_classifiers(text: str) -> Tuple[str, bool, bool]:
    is_static = is_abstract = False
    while text and text[-1] in "$*":
        if text[-1] == "$":
            is_static = True
        else:
            is_abstract = True
        text = text[:-1].rstrip()
    return text, is_static, is_abstract


def _split_typed_name(text: str) -> Tuple[Optional[str], Optional[str], bool]:
    """(name, type, postfix) for "name: Type", "Type name" or a single token."""
    if ":" in text:
        name, _, type_text = text.partition(":")
        return name.strip(), type_text.strip() or None, True
    parts = split_top_level(text.strip(), " ")
    parts = [p for p in parts if p]
    if len(parts) >= 2:
        return parts[-1], " ".join(parts[:-1]), False
    return None, (parts[0] if parts else None), False


def parse_parameter(text: str) -> MethodParameter:
    name, type_text, postfix = _split_typed_name(text)
    return MethodParameter(name=name, type=type_text, postfix_type=postfix)


def parse_member(text: str) -> Optional[Member]:
    """Parse one member line: "+String name", "-keys: List~KeyCode~", "+press(KeyCode key) void$"."""
    text = text.strip().rstrip(";").strip()
    if not text:
        return None

    visibility = ""
    if text[0] in VISIBILITY_SYMBOLS:
        visibility = text[0]
        text = text[1:].strip()

    text, is_static, is_abstract = _split_classifiers(text)
    if not text:
        return None

    method = METHOD_RE.match(text)
    if method:
        rest, static_after, abstract_after = _split_classifiers_prefix(method.group("rest"))
        params_text = method.group("params").strip()
        parameters = [parse_parameter(p) for p in split_top_level(params_text)] if params_text else []
        return Method(
            name=method.group("name").strip(),
            parameters=parameters,
            return_type=rest or None,
            visibility=visibility,
            is_static=is_static or static_after,
            is_abstract=is_abstract or abstract_after,
        )

    name, type_text, postfix = _split_typed_name(text)
    if name is None:
        # A single token is the attribute name
        name, type_text = type_text, None
    return Attribute(
        name=name,
        type=type_text,
        visibility=visibility,
        is_static=is_static,
        is_abstract=is_abstract,
        postfix_type=postfix,
    )


def _split_classifiers_prefix(text: str) -> Tuple[str, bool, bool]:
    """Classifiers written right after the parameter list: "foo()$ int"."""
    text = text.strip()
    is_static = is_abstract = False
    while text and text[0] in "$*":
        if text[0] == "$":
            is_static = True
        else:
            is_abstract = True
        text = text[1:].strip()
    return text, is_static, is_abstract


class MermaidParser:
    """Parser for Mermaid class diagram text."""

    def parse_file(self, filepath: Path) -> Diagram:
        """Parse a diagram file. Empty files give an empty diagram."""
        text = Path(filepath).read_text(encoding="utf-8")
        return self.parse(text)

    def parse(self, text: str) -> Diagram:
        """
        Parse diagram text into a Diagram.

        Raises:
            DiagramGrammarError: the text is not an accepted class diagram.
        """
        diagram = Diagram()
        lines = text.splitlines()
        if not text.strip():
            return diagram

        start = self._parse_frontmatter(lines, diagram)
        self._class_index: Dict[str, ClassDecl] = {}
        current_class: Optional[ClassDecl] = None
        current_namespace: Optional[Namespace] = None
        class_line = 0
        namespace_line = 0
        seen_header = False

        for number, raw in enumerate(lines[start:], start=start + 1):
            line = raw.strip()
            if not line or line.startswith("%%"):
                continue

            if not seen_header:
                if not HEADER_RE.match(line):
                    raise DiagramGrammarError(f"expected 'classDiagram', found {line!r}", number)
                seen_header = True
                continue

            if current_class is not None:
                if line == "}":
                    current_class = None
                    continue
                annotation = ANNOTATION_RE.match(line)
                if annotation:
                    current_class.annotations.append(annotation.group("annotation").strip())
                    continue
                member = parse_member(line)
                if member is None:
                    raise DiagramGrammarError(f"cannot parse member {line!r}", number)
                current_class.members.append(member)
                continue

            match = CLASS_RE.match(line)
            if match:
                decl = self._ensure_class(diagram, unquote_name(match.group("name")), current_namespace)
                if match.group("generic"):
                    decl.generic = match.group("generic")
                if match.group("label") is not None:
                    decl.label = match.group("label")
                if match.group("open") and not match.group("close"):
                    current_class = decl
                    class_line = number
                elif match.group("close") and not match.group("open"):
                    raise DiagramGrammarError("unexpected '}'", number)
                continue

            match = ANNOTATION_LINE_RE.match(line)
            if match:
                decl = self._ensure_class(diagram, unquote_name(match.group("name")), current_namespace)
                decl.annotations.append(match.group("annotation").strip())
                continue

            if current_namespace is not None:
                if line == "}":
                    diagram.namespaces.append(current_namespace)
                    current_namespace = None
                    continue
                raise DiagramGrammarError(f"only class declarations are allowed in a namespace: {line!r}", number)

            match = NAMESPACE_RE.match(line)
            if match:
                current_namespace = Namespace(name=unquote_name(match.group("name")))
                namespace_line = number
                continue

            match = DIRECTION_RE.match(line)
            if match:
                diagram.direction = match.group(1)
                continue

            match = RELATION_RE.match(line)
            if match:
                diagram.relations.append(self._relation(match))
                continue

            match = INLINE_MEMBER_RE.match(line)
            if match:
                member = parse_member(match.group("member"))
                if member is None:
                    raise DiagramGrammarError(f"cannot parse member {line!r}", number)
                self._ensure_class(diagram, unquote_name(match.group("name")), None).members.append(member)
                continue

            if line.split(None, 1)[0] in PASSTHROUGH_KEYWORDS:
                diagram.statements.append(line)
                continue

            raise DiagramGrammarError(f"unrecognised statement {line!r}", number)

        if not seen_header:
            raise DiagramGrammarError("missing 'classDiagram' header")
        if current_class is not None:
            raise DiagramGrammarError(f"class {current_class.name} is not closed", class_line)
        if current_namespace is not None:
            raise DiagramGrammarError(f"namespace {current_namespace.name} is not closed", namespace_line)

        return diagram

    def _parse_frontmatter(self, lines: List[str], diagram: Diagram) -> int:
        """Read YAML frontmatter if present; returns the index of the first line after it."""
        if not lines or lines[0].strip() != "---":
            return 0
        for end in range(1, len(lines)):
            if lines[end].strip() == "---":
                try:
                    data = yaml.safe_load("\n".join(lines[1:end]))
                except yaml.YAMLError as e:
                    raise DiagramGrammarError(f"invalid frontmatter: {e}", 1)
                if data is not None and not isinstance(data, dict):
                    raise DiagramGrammarError("frontmatter must be a mapping", 1)
                diagram.frontmatter = data or {}
                return end + 1
        raise DiagramGrammarError("frontmatter is not closed", 1)

    def _ensure_class(self, diagram: Diagram, name: str, namespace: Optional[Namespace]) -> ClassDecl:
        decl = self._class_index.get(name)
        if decl is None:
            decl = ClassDecl(name=name)
            self._class_index[name] = decl
            if namespace is not None:
                namespace.classes.append(decl)
            else:
                diagram.classes.append(decl)
        return decl

    def _relation(self, match: "re.Match") -> Relation:
        kind, line, marker = ARROWS[match.group("arrow")]
        label = (match.group("label") or "").strip() or None
        return Relation(
            left=unquote_name(match.group("left")),
            right=unquote_name(match.group("right")),
            kind=kind,
            line=line,
            marker=marker,
            left_cardinality=match.group("lcard"),
            right_cardinality=match.group("rcard"),
            label=label,
        )


def parse_mermaid(text: str) -> Diagram:
    """Parse Mermaid class diagram text."""
    return MermaidParser().parse(text)
