"""Render the non-AST project files from Jinja2 templates."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import jinja2

from .model_types import ResourceGroup, SchemaSymbol, SpecDocument

TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_PORT = 3080
GENERATED_VERSION = "0.1.0"


def template_environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
    )


def build_context(
    spec: SpecDocument,
    *,
    server_name: str,
    project_name: str,
    package_name: str,
    resources: Sequence[ResourceGroup],
    symbols: dict[str, SchemaSymbol],
    warnings: Sequence[str],
) -> dict[str, Any]:
    """Template context shared by every project file."""
    resource_entries = []
    for resource in resources:
        primary = symbols.get(resource.primary_schema_name) if resource.primary_schema_name else None
        resource_entries.append(
            {
                "name": resource.name,
                "uri_template": resource.uri_template,
                "schema": primary.class_name if primary is not None else None,
                "slots": [
                    {
                        "name": slot_name,
                        "http_method": method_slot.operation.method.upper(),
                        "path": method_slot.operation.path,
                    }
                    for slot_name, method_slot in resource.slots.items()
                ],
            }
        )

    return {
        "server_name": server_name,
        "project_name": project_name,
        "package_name": package_name,
        "title": spec.title,
        "api_version": spec.api_version,
        "description": spec.description,
        "base_url": spec.base_url or DEFAULT_BASE_URL,
        "port": DEFAULT_PORT,
        "version": GENERATED_VERSION,
        "resources": resource_entries,
        "schema_names": list(symbols),
        "warnings": [" ".join(warning.split()) for warning in warnings],
    }


def render_project_files(context: dict[str, Any]) -> dict[str, str]:
    """Render client, server, manifest and README keyed by template name."""
    env = template_environment()
    return {
        name: env.get_template(f"{name}.j2").render(**context)
        for name in ("client.py", "server.py", "pyproject.toml", "README.md")
    }
