"""Local ``$ref`` resolution for OpenAPI documents."""

from __future__ import annotations

from typing import Optional

from .json_types import JSONObject, JSONValue


class ResolveError(RuntimeError):
    """Raised when resolving OpenAPI references fails."""


SCHEMA_REF_PREFIX = "#/components/schemas/"


def decode_pointer_token(token: str) -> str:
    """Undo JSON pointer escaping for one token."""
    return token.replace("~1", "/").replace("~0", "~")


def resolve_pointer(document: JSONObject, ref: str) -> JSONValue:
    """Return the value a local ``#/...`` reference points at."""
    if not ref.startswith("#/"):
        raise ResolveError(f"Only local references are currently supported: {ref}")

    current: JSONValue = document
    for token in ref[2:].split("/"):
        token = decode_pointer_token(token)
        if not isinstance(current, dict) or token not in current:
            raise ResolveError(f"Unresolvable reference: {ref}")
        current = current[token]
    return current


def resolve_object(document: JSONObject, node: JSONValue) -> Optional[JSONObject]:
    """Follow a chain of ``$ref`` wrappers until a mapping without one is reached.

    Used for parameters, request bodies and responses, which are inlined.
    Schemas are never passed through here: their references stay symbolic.
    """
    seen: set[str] = set()
    current = node
    while isinstance(current, dict):
        ref_value = current.get("$ref")
        if not isinstance(ref_value, str):
            return current
        if ref_value in seen:
            raise ResolveError(f"Circular reference: {ref_value}")
        seen.add(ref_value)
        current = resolve_pointer(document, ref_value)
    return None


def schema_ref_name(node: JSONValue) -> Optional[str]:
    """Return ``Name`` for a ``{"$ref": "#/components/schemas/Name"}`` node."""
    if not isinstance(node, dict):
        return None
    ref_value = node.get("$ref")
    if not isinstance(ref_value, str) or not ref_value.startswith(SCHEMA_REF_PREFIX):
        return None
    name = ref_value[len(SCHEMA_REF_PREFIX) :]
    if not name or "/" in name:
        return None
    return decode_pointer_token(name)
