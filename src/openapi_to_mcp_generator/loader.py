"""OpenAPI document loading and structural validation."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional

import httpx
import yaml
from openapi_python_client.schema import OpenAPI
from pydantic import ValidationError

from .json_types import JSONObject, JSONValue
from .model_types import SpecDocument
from .naming import HTTP_METHODS

logger = logging.getLogger(__name__)

_REMOTE_PREFIXES = ("http://", "https://")
_SERVER_VARIABLE_RE = re.compile(r"\{([^{}]+)\}")


class LoadError(RuntimeError):
    """Raised when a source OpenAPI document cannot be loaded."""


def is_remote(source: str) -> bool:
    """Return whether the locator should be fetched over HTTP."""
    return source.startswith(_REMOTE_PREFIXES)


def read_source(
    source: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> str:
    """Read raw document text from a file path or an HTTP(S) URL."""
    if is_remote(source):
        return _fetch(source, client=client, timeout=timeout)

    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Failed to read OpenAPI file {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise LoadError(f"OpenAPI file {path} is not valid UTF-8: {exc}") from exc


def _fetch(url: str, *, client: Optional[httpx.Client], timeout: float) -> str:
    try:
        if client is not None:
            response = client.get(url, follow_redirects=True)
        else:
            with httpx.Client(timeout=timeout, follow_redirects=True) as owned:
                response = owned.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise LoadError(
            f"Failed to fetch OpenAPI document {url}: HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise LoadError(f"Failed to fetch OpenAPI document {url}: {exc}") from exc
    return response.text


def decode_document(text: str, *, source: str = "<string>") -> JSONObject:
    """Decode JSON, falling back to YAML, into a mapping."""
    payload: JSONValue
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise LoadError(f"Failed to parse {source} as JSON or YAML: {exc}") from exc

    if not isinstance(payload, dict):
        raise LoadError(
            f"OpenAPI document must deserialize to a mapping, got {type(payload).__name__}"
        )
    return payload


def validate_structure(document: JSONObject, *, source: str = "<string>") -> None:
    """Check the shape the compiler relies on, reporting every problem at once."""
    errors: list[str] = []

    version = document.get("openapi")
    if not isinstance(version, str) or not version.strip():
        errors.append("missing or invalid 'openapi' version field")
    elif not version.strip().startswith("3."):
        errors.append(f"unsupported OpenAPI version {version.strip()}; only 3.x is supported")

    if not isinstance(document.get("info"), dict):
        errors.append("'info' must be a mapping")

    paths = document.get("paths")
    if not isinstance(paths, dict):
        errors.append("'paths' must be a mapping")
    elif not paths:
        errors.append("'paths' must declare at least one path")

    components = document.get("components")
    if components is not None and not isinstance(components, dict):
        errors.append("'components' must be a mapping")
    elif isinstance(components, dict):
        schemas = components.get("schemas")
        if schemas is not None and not isinstance(schemas, dict):
            errors.append("'components.schemas' must be a mapping")

    if errors:
        details = "\n".join(f"- {error}" for error in errors)
        raise LoadError(f"Invalid OpenAPI document {source}:\n{details}")


def lint_document(document: JSONObject) -> list[str]:
    """Return advisory findings; none of them stop compilation."""
    findings: list[str] = []
    for path, method, operation, _path_item in iter_operations(document):
        label = f"{method.upper()} {path}"
        if not isinstance(operation.get("operationId"), str):
            findings.append(f"{label} has no operationId")
        responses = operation.get("responses")
        if not isinstance(responses, dict) or not responses:
            findings.append(f"{label} declares no responses")

    try:
        OpenAPI.model_validate(document)
    except ValidationError as exc:
        findings.append(f"OpenAPI model validation reported {exc.error_count()} issue(s)")

    for finding in findings:
        logger.warning("OpenAPI lint: %s", finding)
    return findings


def iter_operations(
    document: JSONObject,
) -> list[tuple[str, str, JSONObject, JSONObject]]:
    """Flatten ``paths`` into ``(path, method, operation, path_item)`` entries."""
    entries: list[tuple[str, str, JSONObject, JSONObject]] = []
    paths = document.get("paths")
    if not isinstance(paths, dict):
        return entries

    for path, path_item in paths.items():
        if not isinstance(path, str) or not isinstance(path_item, dict):
            continue
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if isinstance(operation, dict):
                entries.append((path, method, operation, path_item))
    return entries


def base_url(document: JSONObject) -> Optional[str]:
    """Return the first server URL with server variables set to their defaults."""
    servers = document.get("servers")
    if not isinstance(servers, list) or not servers:
        return None
    server = servers[0]
    if not isinstance(server, dict) or not isinstance(server.get("url"), str):
        return None

    variables = server.get("variables")
    defaults: dict[str, str] = {}
    if isinstance(variables, dict):
        for name, variable in variables.items():
            if isinstance(variable, dict) and variable.get("default") is not None:
                defaults[name] = str(variable["default"])

    def substitute(match: re.Match[str]) -> str:
        return defaults.get(match.group(1), match.group(0))

    url = _SERVER_VARIABLE_RE.sub(substitute, server["url"])
    return url.rstrip("/") or None


def load_spec_document(
    source: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> SpecDocument:
    """Load, decode and validate an OpenAPI 3.x document."""
    text = read_source(source, client=client, timeout=timeout)
    document = decode_document(text, source=source)
    validate_structure(document, source=source)
    lint_document(document)

    info = document["info"]
    components = document.get("components")
    schemas: dict[str, JSONObject] = {}
    if isinstance(components, dict) and isinstance(components.get("schemas"), dict):
        for name, raw_schema in components["schemas"].items():
            schemas[str(name)] = raw_schema if isinstance(raw_schema, dict) else {}

    description = info.get("description")
    title = info.get("title")
    api_version = info.get("version")
    logger.debug("Loaded %s with %d component schemas", source, len(schemas))
    return SpecDocument(
        source=source,
        openapi_version=str(document["openapi"]).strip(),
        title=title if isinstance(title, str) else "API",
        api_version=str(api_version) if api_version is not None else "0.0.0",
        description=description if isinstance(description, str) else None,
        base_url=base_url(document),
        schemas=schemas,
        paths=tuple(iter_operations(document)),
        document=document,
    )
