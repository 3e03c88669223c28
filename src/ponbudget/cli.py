"""
CLI interface for ponbudget.

Reads a project file, evaluates the link budget and prints a report.
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import get_config
from .formats import csv as _csv  # noqa: F401 - ensure csv format is registered
from .formats import text as _text  # noqa: F401 - ensure text format is registered
from .formats.base import ReportFormat, evaluate_project, registry
from .formats.json import ProjectFormatError, load_project


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    get_config()

    parser = argparse.ArgumentParser(
        prog="ponbudget",
        description="Optical power budget for PON distribution trees",
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Project file (reads from stdin if not provided)",
    )

    parser.add_argument(
        "--type",
        "-t",
        type=str,
        dest="format_type",
        default="text",
        help="Report format: text, csv or json (default: text)",
    )

    parser.add_argument(
        "--power",
        "-p",
        type=float,
        help="Override the source power in dBm",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug messages to stderr",
    )

    return parser.parse_args(args)


def read_input(filepath: str | None) -> str:
    """Read from file or stdin."""
    if filepath:
        with open(filepath, encoding="utf-8") as f:
            return f.read()
    return sys.stdin.read()


def get_format(format_type: str) -> ReportFormat:
    """Get report format by name or extension."""
    fmt = registry.get_by_name(format_type) or registry.get_by_extension(format_type)
    if fmt is None:
        raise ValueError(
            f"Unknown report type: {format_type}. Choose one of: {', '.join(registry.names)}"
        )
    return fmt


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        fmt = get_format(parsed.format_type)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Read content
    try:
        content = read_input(parsed.file)
    except FileNotFoundError:
        print(f"Error: File not found: {parsed.file}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading input: {e}", file=sys.stderr)
        return 1

    try:
        project = load_project(content)
    except ProjectFormatError as e:
        print(f"Error: Invalid project file: {e}", file=sys.stderr)
        return 1

    if parsed.power is not None:
        project.source_power = parsed.power

    print(fmt.render(evaluate_project(project)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
