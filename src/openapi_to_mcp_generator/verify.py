"""Verification of generated schema modules against the translated schemas."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import BaseModel

from .linker import LinkedSchemas
from .model_types import SchemaSymbol
from .module_loading import load_package_from_path, load_submodule, unload_package
from .schema_models import is_model_object


@dataclass(frozen=True)
class VerificationMismatch:
    """One verification mismatch."""

    schema_name: str
    class_name: str
    path: str
    expected: Any
    actual: Any


@dataclass(frozen=True)
class VerificationReport:
    """Result of the verification phase."""

    verified_count: int
    mismatch_count: int
    mismatches: tuple[VerificationMismatch, ...]


def verify_generated_schemas(
    *,
    output_dir: Path,
    package_name: str,
    linked: LinkedSchemas,
    symbols: dict[str, SchemaSymbol],
) -> VerificationReport:
    """Import the generated ``schemas`` package and compare every model.

    Object schemas must expose the source property names as aliases and the
    same required set; every generated JSON schema must itself be a valid
    JSON schema.
    """
    package = load_package_from_path(
        package_name=package_name,
        package_dir=output_dir / package_name,
    )
    mismatches: list[VerificationMismatch] = []
    try:
        schemas_module = load_submodule(package, "schemas")
        for name, symbol in symbols.items():
            generated_class = getattr(schemas_module, symbol.class_name, None)
            if not isinstance(generated_class, type) or not issubclass(generated_class, BaseModel):
                mismatches.append(
                    VerificationMismatch(name, symbol.class_name, "class", symbol.class_name, None)
                )
                continue
            mismatches.extend(_compare(name, symbol, generated_class, linked))
    finally:
        unload_package(package)

    return VerificationReport(
        verified_count=len(symbols),
        mismatch_count=len(mismatches),
        mismatches=tuple(mismatches),
    )


def _compare(
    name: str,
    symbol: SchemaSymbol,
    generated_class: type[BaseModel],
    linked: LinkedSchemas,
) -> list[VerificationMismatch]:
    mismatches: list[VerificationMismatch] = []
    generated_schema = generated_class.model_json_schema(by_alias=True)
    try:
        validator_for(generated_schema).check_schema(generated_schema)
    except SchemaError as exc:
        mismatches.append(
            VerificationMismatch(name, symbol.class_name, "schema", "valid JSON schema", exc.message)
        )

    node = linked.table[name]
    if not is_model_object(node, linked):
        return mismatches

    view = linked.object_view(node)
    if view is None:
        return mismatches
    properties, required = view
    expected_properties = sorted(properties)
    actual_properties = sorted(generated_schema.get("properties", {}))
    if expected_properties != actual_properties:
        mismatches.append(
            VerificationMismatch(
                name, symbol.class_name, "properties", expected_properties, actual_properties
            )
        )
    expected_required = sorted(required & set(properties))
    actual_required = sorted(generated_schema.get("required", []))
    if expected_required != actual_required:
        mismatches.append(
            VerificationMismatch(
                name, symbol.class_name, "required", expected_required, actual_required
            )
        )
    return mismatches


def format_report(report: VerificationReport) -> str:
    """Render report as CLI output text."""
    lines = [
        f"Verified schemas: {report.verified_count}",
        f"Mismatches: {report.mismatch_count}",
    ]
    for mismatch in report.mismatches:
        lines.extend(
            [
                f"- {mismatch.schema_name} ({mismatch.class_name})",
                f"  path: {mismatch.path}",
                f"  expected: {short_repr(mismatch.expected)}",
                f"  actual: {short_repr(mismatch.actual)}",
            ]
        )
    return "\n".join(lines)


def short_repr(value: Any, *, limit: int = 160) -> str:
    """A short representation for mismatch diagnostics."""
    text = repr(value)
    return text if len(text) <= limit else f"{text[: limit - 3]}..."
