"""Command line interface for OpenAPI to MCP server generation."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .compiler import compile_spec
from .diagnostics import StrictModeViolation
from .loader import LoadError, decode_document, lint_document, read_source, validate_structure
from .model_types import CompileOptions
from .verify import format_report
from .writer import EmissionError


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    parser = argparse.ArgumentParser(
        prog="openapi-to-mcp-generator",
        description="Generate an MCP server project from an OpenAPI 3.x document",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a server project")
    generate.add_argument("source", help="Path or HTTP(S) URL of an OpenAPI JSON/YAML document")
    generate.add_argument("-o", "--output", required=True, help="Output directory")
    generate.add_argument("-n", "--name", required=True, help="Server and project name")
    generate.add_argument("--verbose", action="store_true", help="Log progress")
    generate.add_argument(
        "--strict",
        action="store_true",
        help="Fail on unresolved references and unsupported schema shapes",
    )
    generate.add_argument(
        "--no-format",
        dest="format",
        action="store_false",
        help="Skip the ruff format pass over generated code",
    )
    generate.add_argument(
        "--verify",
        action="store_true",
        help="Import the generated schemas and compare them with the source",
    )
    generate.add_argument(
        "--overwrite",
        action="store_true",
        help="Allow writing into a non-empty output directory",
    )
    generate.add_argument(
        "--no-readonly-detection",
        dest="detect_readonly",
        action="store_false",
        help="Only honour explicit readOnly/x-readonly markers",
    )

    validate = subparsers.add_parser("validate", help="Validate an OpenAPI document")
    validate.add_argument("source", help="Path or HTTP(S) URL of an OpenAPI JSON/YAML document")
    validate.add_argument("--verbose", action="store_true", help="Log progress")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "validate":
        return _validate(parser, args)
    return _generate(parser, args)


def _validate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    try:
        document = decode_document(read_source(args.source), source=args.source)
        validate_structure(document, source=args.source)
    except LoadError as exc:
        parser.error(str(exc))
        return 2

    findings = lint_document(document)
    print(f"{args.source}: valid OpenAPI {document['openapi']} document")
    for finding in findings:
        print(f"Warning: {finding}")
    return 0


def _generate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    options = CompileOptions(
        verbose=bool(args.verbose),
        strict_mode=bool(args.strict),
        format=bool(args.format),
        verify=bool(args.verify),
        overwrite=bool(args.overwrite),
        detect_readonly=bool(args.detect_readonly),
    )
    try:
        result = compile_spec(args.source, Path(args.output), args.name, options)
    except (LoadError, EmissionError, StrictModeViolation) as exc:
        parser.error(str(exc))
        return 2

    for warning in result.warnings:
        print(f"Warning: {warning}")
    print(f"Generated {len(result.files)} files in {result.output_dir}")

    if result.verification_report is not None:
        print(format_report(result.verification_report))
        if result.verification_report.mismatch_count > 0:
            return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
