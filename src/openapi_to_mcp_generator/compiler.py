"""High-level compiler orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from .codegen_ast import (
    render_package_init_module,
    render_resource_module,
    render_resources_init_module,
    render_schema_module,
    render_schemas_init_module,
    with_warning_comments,
)
from .diagnostics import WarningCategory, WarningLog, resource_subject, schema_subject
from .linker import LinkedSchemas, link_schemas
from .loader import load_spec_document
from .model_types import (
    CompileOptions,
    CompileResult,
    ResourceGroup,
    SchemaModule,
    SchemaSymbol,
    SpecDocument,
)
from .naming import snake_case
from .operations import extract_operations
from .policy import DEFAULT_POLICY
from .project_files import GENERATED_VERSION, build_context, render_project_files
from .pruner import prune_schemas
from .schema_models import SchemaModelBuilder, build_symbol_table
from .synthesizer import synthesize_resources
from .translator import translate_schemas
from .verify import verify_generated_schemas
from .writer import format_generated_tree, prepare_output_dir, write_artifacts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedProject:
    """Rendered artifacts plus the intermediate results they were built from."""

    package_name: str
    artifacts: dict[str, str]
    linked: LinkedSchemas
    symbols: dict[str, SchemaSymbol]
    resources: tuple[ResourceGroup, ...]
    warnings: tuple[str, ...]


def package_name_for(server_name: str) -> str:
    """Import package name derived from the server name."""
    return snake_case(server_name)


def build_artifacts(
    spec: SpecDocument,
    server_name: str,
    options: Optional[CompileOptions] = None,
    *,
    log: Optional[WarningLog] = None,
) -> GeneratedProject:
    """Run translation, pruning, synthesis and rendering without touching the disk.

    Args:
        spec (SpecDocument): Loaded OpenAPI document.
        server_name (str): Name of the generated server and project.
        options (Optional[CompileOptions]): Compilation switches.
        log (Optional[WarningLog]): Warning log to record into.

    Returns:
        GeneratedProject: Relative paths mapped to file contents, in write order.
    """
    options = options if options is not None else CompileOptions()
    log = log if log is not None else WarningLog(strict=options.strict_mode)
    policy = options.policy if options.policy is not None else DEFAULT_POLICY
    progress = logger.info if options.verbose else logger.debug

    if not spec.schemas:
        log.add(
            WarningCategory.MISSING_SCHEMAS,
            "Document has no components.schemas; resources are exposed untyped",
        )

    table = translate_schemas(
        spec.schemas,
        log=log,
        policy=policy,
        detect_readonly=options.detect_readonly,
    )
    progress("Translated %d schemas", len(table))
    linked_all = link_schemas(table, log=log)

    operations = extract_operations(spec)
    progress("Extracted %d operations", len(operations))
    linked = LinkedSchemas(prune_schemas(linked_all.table, operations))
    progress("Kept %d of %d schemas after pruning", len(linked.table), len(table))

    resources = synthesize_resources(operations, linked.table, log=log, policy=policy)
    progress("Synthesized %d resources", len(resources))

    symbols = build_symbol_table(linked)
    builder = SchemaModelBuilder(linked, symbols)
    modules = [builder.build_module(name) for name in linked.names()]

    package_name = package_name_for(server_name)
    artifacts = _render(
        spec,
        server_name=server_name,
        package_name=package_name,
        modules=modules,
        resources=resources,
        symbols=symbols,
        log=log,
    )
    return GeneratedProject(
        package_name=package_name,
        artifacts=artifacts,
        linked=linked,
        symbols=symbols,
        resources=tuple(resources),
        warnings=log.messages(),
    )


def _render(
    spec: SpecDocument,
    *,
    server_name: str,
    package_name: str,
    modules: list[SchemaModule],
    resources: list[ResourceGroup],
    symbols: dict[str, SchemaSymbol],
    log: WarningLog,
) -> dict[str, str]:
    attached = {schema_subject(name) for name in symbols}
    attached.update(resource_subject(resource.name) for resource in resources)
    unattached = [warning.message for warning in log.unattached(attached)]

    context = build_context(
        spec,
        server_name=server_name,
        project_name=package_name.replace("_", "-"),
        package_name=package_name,
        resources=resources,
        symbols=symbols,
        warnings=unattached,
    )
    project_files = render_project_files(context)

    artifacts: dict[str, str] = {
        "pyproject.toml": project_files["pyproject.toml"],
        "README.md": project_files["README.md"],
        f"{package_name}/__init__.py": render_package_init_module(spec.title, GENERATED_VERSION),
        f"{package_name}/client.py": project_files["client.py"],
        f"{package_name}/server.py": project_files["server.py"],
        f"{package_name}/schemas/__init__.py": render_schemas_init_module(modules, spec.title),
    }
    for module in modules:
        subject = schema_subject(module.symbol.schema_name)
        artifacts[f"{package_name}/schemas/{module.symbol.module_name}.py"] = with_warning_comments(
            render_schema_module(module, symbols),
            [warning.message for warning in log.for_subject(subject)],
        )

    artifacts[f"{package_name}/resources/__init__.py"] = render_resources_init_module(resources)
    for resource in resources:
        subject = resource_subject(resource.name)
        artifacts[f"{package_name}/resources/{resource.name}.py"] = with_warning_comments(
            render_resource_module(resource, symbols),
            [warning.message for warning in log.for_subject(subject)],
        )
    return artifacts


def compile_spec(
    source: str,
    output_dir: Path,
    server_name: str,
    options: Optional[CompileOptions] = None,
    *,
    client: Optional[httpx.Client] = None,
) -> CompileResult:
    """Compile an OpenAPI document into an MCP server project.

    Args:
        source (str): File path or HTTP(S) URL of the OpenAPI document.
        output_dir (Path): Directory where the project is written.
        server_name (str): Name of the generated server and project.
        options (Optional[CompileOptions]): Compilation switches.
        client (Optional[httpx.Client]): HTTP client used for remote sources.

    Returns:
        CompileResult: Written files, warnings and optional verification report.
    """
    options = options if options is not None else CompileOptions()
    log = WarningLog(strict=options.strict_mode)
    progress = logger.info if options.verbose else logger.debug

    spec = load_spec_document(source, client=client, timeout=options.timeout)
    progress("Loaded %s (OpenAPI %s)", spec.title, spec.openapi_version)
    project = build_artifacts(spec, server_name, options, log=log)

    prepare_output_dir(output_dir, overwrite=options.overwrite)
    written = write_artifacts(output_dir, project.artifacts)
    progress("Wrote %d files to %s", len(written), output_dir)

    if options.format:
        format_generated_tree(package_dir=output_dir / project.package_name)

    report = None
    if options.verify:
        report = verify_generated_schemas(
            output_dir=output_dir,
            package_name=project.package_name,
            linked=project.linked,
            symbols=project.symbols,
        )

    return CompileResult(
        output_dir=output_dir,
        package_name=project.package_name,
        warnings=project.warnings,
        files=written,
        schema_names=tuple(project.symbols),
        resource_names=tuple(resource.name for resource in project.resources),
        verification_report=report,
    )
