#!/usr/bin/env python3
"""
umlink CLI

Link a hand-written Mermaid class diagram with the classes compiled from
the code it describes.
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import LinkConfig, RELATION_KEYS, load_config
from .diagram import Diagram
from .errors import DiagramGrammarError
from .linker import DiagramLinker
from .loader import ClassfileLoader
from .mermaid_parser import MermaidParser
from .model_builder import retention_of
from .relationships import RelationshipInference
from .retention import RetentionResolver
from .serializer import save_diagram

FAILED_TO_LOAD_CLASSFILES = 1
FAILED_TO_LOAD_DIAGRAM = 2
FAILED_TO_WRITE_OUTPUT = 3

DEFAULT_OUTPUT_NAME = "output.mmd"


def resolve_output_path(output: Path, diagram_path: Optional[Path]) -> Path:
    """
    Decide the file to write.

    An existing directory receives the diagram's file name (or output.mmd).
    Existing files are never overwritten and the parent directory must exist.

    Raises:
        FileExistsError: the target file already exists.
        FileNotFoundError: the parent directory does not exist.
    """
    if output.is_dir():
        name = diagram_path.name if diagram_path is not None else DEFAULT_OUTPUT_NAME
        output = output / name
    if output.exists():
        raise FileExistsError(f"Output path {output} already exists. Refusing to overwrite.")
    parent = output.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory {parent} does not exist")
    return output


def build_resolver(config: LinkConfig, loader: ClassfileLoader) -> RetentionResolver:
    """Skip resolver; the skip annotation's retention is read from its own classfile when loaded."""
    retention = None
    if config.skip and config.skip in loader.models:
        retention = retention_of(loader.models[config.skip])
    return RetentionResolver(config.skip, retention)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="umlink",
        description="Fill a Mermaid class diagram with members and relationships from Java classfiles."
    )
    parser.add_argument(
        "diagram",
        nargs="?",
        type=Path,
        help="Mermaid class diagram to link. Without one, every loaded class is written."
    )
    parser.add_argument(
        "-c", "--classfiles",
        type=Path,
        action="append",
        default=[],
        help="Classfile or directory to search recursively (repeatable)."
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        required=True,
        help="Output file, or directory to write the diagram's file name into."
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file (default: umlink.yml in the current directory)."
    )
    parser.add_argument(
        "--skip",
        help="Fully qualified annotation marking types, fields and methods to leave out."
    )
    for key in RELATION_KEYS:
        parser.add_argument(
            f"--{key}",
            help=f"Fully qualified annotation for '{key}' relationships."
        )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)."
    )
    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config).merge({
        "skip": args.skip,
        "aggregate": args.aggregate,
        "compose": args.compose,
        "link": args.link,
        "navigate": args.navigate,
    })

    # 1. Load classfiles
    print("1️⃣ Loading classfiles...")
    loader = ClassfileLoader()
    for include_path in args.classfiles:
        try:
            loader.load_path(include_path)
        except OSError as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(FAILED_TO_LOAD_CLASSFILES)
    if args.classfiles and not loader.models:
        print("❌ No classfiles found in the include paths.", file=sys.stderr)
        sys.exit(FAILED_TO_LOAD_CLASSFILES)
    stats = loader.get_statistics()
    print(f"   ✓ {stats['loaded']} classes, {stats['malformed']} malformed, "
          f"{stats['anonymous_skipped']} anonymous skipped")

    # 2. Parse diagram
    print("2️⃣ Parsing diagram...")
    mermaid = MermaidParser()
    if args.diagram is not None:
        try:
            diagram = mermaid.parse_file(args.diagram)
        except (OSError, UnicodeDecodeError, DiagramGrammarError) as e:
            print(f"❌ {args.diagram}: {e}", file=sys.stderr)
            sys.exit(FAILED_TO_LOAD_DIAGRAM)
    else:
        diagram = Diagram()
    diagram_stats = diagram.get_statistics()
    print(f"   ✓ {diagram_stats['total_classes']} classes, "
          f"{diagram_stats['total_relationships']} relationships")

    # 3. Link
    print("3️⃣ Linking...")
    resolver = build_resolver(config, loader)
    inference = RelationshipInference(config.relationship_annotations(), resolver)
    linker = DiagramLinker(loader.get_models(), resolver, inference)
    merged, report = linker.merge(diagram, select_all=args.diagram is None)
    link_stats = report.get_statistics()
    print(f"   ✓ {link_stats['linked_classes']} linked, {link_stats['added_classes']} added, "
          f"{link_stats['excluded_classes']} excluded, {link_stats['unresolved_classes']} unresolved")
    print(f"   ✓ {link_stats['inferred_relations']} inferred and "
          f"{link_stats['hierarchy_relations']} inheritance relationships, "
          f"{link_stats['suppressed_relations']} duplicates suppressed")
    print(f"   ✓ Relationship graph: {report.graph['node_count']} nodes, "
          f"{report.graph['declared_edges']} declared and {report.graph['inferred_edges']} inferred edges")

    # 4. Write output
    print("4️⃣ Writing diagram...")
    try:
        output_path = resolve_output_path(args.output, args.diagram)
        save_diagram(merged, output_path)
    except OSError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(FAILED_TO_WRITE_OUTPUT)

    print(f"\n✅ Done! Output: {output_path}")


if __name__ == "__main__":
    main()
