"""Flatten OpenAPI ``paths`` into operation records."""

from __future__ import annotations

import logging
from typing import Optional

from .json_types import JSONObject, JSONValue
from .model_types import OperationRecord, ParameterRecord, SchemaRef, SpecDocument
from .resolver import ResolveError, resolve_object, schema_ref_name

logger = logging.getLogger(__name__)

_PARAMETER_LOCATIONS = ("path", "query")
_JSON_MEDIA_TYPE = "application/json"


def extract_operations(spec: SpecDocument) -> list[OperationRecord]:
    """Return one record per recognised ``(path, method)`` pair, in document order."""
    records: list[OperationRecord] = []
    for path, method, operation, path_item in spec.paths:
        request_ref, request_required = _request_body_ref(spec.document, operation.get("requestBody"))
        records.append(
            OperationRecord(
                method=method,
                path=path,
                operation_id=_optional_str(operation.get("operationId")),
                summary=_optional_str(operation.get("summary")),
                description=_optional_str(operation.get("description")),
                parameters=_merged_parameters(spec.document, path_item, operation),
                request_schema_ref=request_ref,
                request_required=request_required,
                response_schema_refs=_response_refs(spec.document, operation.get("responses")),
            )
        )
    return records


def schema_ref_for(schema: JSONObject) -> SchemaRef:
    """Describe which component schemas a media-type schema names directly."""
    name = schema_ref_name(schema)
    item_name = None
    if name is None and schema.get("type") == "array":
        item_name = schema_ref_name(schema.get("items"))

    member_names: list[str] = []
    for keyword in ("oneOf", "anyOf"):
        members = schema.get(keyword)
        if isinstance(members, list):
            for member in members:
                member_name = schema_ref_name(member)
                if member_name is not None and member_name not in member_names:
                    member_names.append(member_name)
    return SchemaRef(
        schema=schema,
        name=name,
        item_name=item_name,
        member_names=tuple(member_names),
    )


def _merged_parameters(
    document: JSONObject,
    path_item: JSONObject,
    operation: JSONObject,
) -> tuple[ParameterRecord, ...]:
    merged: dict[tuple[str, str], ParameterRecord] = {}
    for owner in (path_item, operation):
        raw_parameters = owner.get("parameters")
        if not isinstance(raw_parameters, list):
            continue
        for raw_parameter in raw_parameters:
            parameter = _resolve(document, raw_parameter)
            if parameter is None:
                continue
            name = parameter.get("name")
            location = parameter.get("in")
            if not isinstance(name, str) or location not in _PARAMETER_LOCATIONS:
                continue
            schema = parameter.get("schema")
            merged[(location, name)] = ParameterRecord(
                name=name,
                location=location,
                required=location == "path" or parameter.get("required") is True,
                schema=schema if isinstance(schema, dict) else {"type": "string"},
                description=_optional_str(parameter.get("description")),
            )
    return tuple(merged.values())


def _request_body_ref(
    document: JSONObject,
    raw_body: JSONValue,
) -> tuple[Optional[SchemaRef], bool]:
    body = _resolve(document, raw_body)
    if body is None:
        return None, False
    schema = _media_schema(body.get("content"))
    if schema is None:
        return None, False
    return schema_ref_for(schema), body.get("required") is True


def _response_refs(document: JSONObject, raw_responses: JSONValue) -> dict[str, SchemaRef]:
    refs: dict[str, SchemaRef] = {}
    if not isinstance(raw_responses, dict):
        return refs
    for status, raw_response in raw_responses.items():
        response = _resolve(document, raw_response)
        if response is None:
            continue
        schema = _media_schema(response.get("content"))
        if schema is not None:
            refs[str(status)] = schema_ref_for(schema)
    return refs


def _media_schema(content: JSONValue) -> Optional[JSONObject]:
    """Pick a schema by media type: JSON, then ``+json`` types, then anything."""
    if not isinstance(content, dict):
        return None

    candidates: list[JSONValue] = []
    if _JSON_MEDIA_TYPE in content:
        candidates.append(content[_JSON_MEDIA_TYPE])
    candidates.extend(
        media
        for media_type, media in content.items()
        if isinstance(media_type, str) and media_type.endswith("+json")
    )
    candidates.extend(content.values())

    for media in candidates:
        if isinstance(media, dict) and isinstance(media.get("schema"), dict):
            return media["schema"]
    return None


def _resolve(document: JSONObject, node: JSONValue) -> Optional[JSONObject]:
    try:
        return resolve_object(document, node)
    except ResolveError as exc:
        logger.warning("Skipping unresolvable component: %s", exc)
        return None


def _optional_str(value: JSONValue) -> Optional[str]:
    return value if isinstance(value, str) else None
