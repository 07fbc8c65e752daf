"""Translate raw OpenAPI schemas into ``SchemaNode`` graphs."""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Mapping
from typing import Optional

from .diagnostics import WarningCategory, WarningLog, schema_subject
from .json_types import JSONObject, JSONValue, RawSchemaTable
from .model_types import SchemaConstraints, SchemaKind, SchemaNode, SchemaTable
from .policy import DEFAULT_POLICY, CompilerPolicy
from .resolver import schema_ref_name

logger = logging.getLogger(__name__)

_PRIMITIVE_KINDS: dict[str, SchemaKind] = {
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.NUMBER,
    "boolean": SchemaKind.BOOLEAN,
}

_NULL_SCHEMA = {"type": "null"}


class TranslationContext:
    """Per-run translation state.

    Holds the raw schema table, the memo of finished translations and the
    stack of names currently being translated. One context belongs to one
    compilation; nothing here is shared between runs.
    """

    def __init__(
        self,
        raw_schemas: RawSchemaTable,
        *,
        log: Optional[WarningLog] = None,
        policy: Optional[CompilerPolicy] = None,
        detect_readonly: bool = True,
    ) -> None:
        self.raw_schemas = raw_schemas
        self.log = log if log is not None else WarningLog()
        self.policy = policy if policy is not None else DEFAULT_POLICY
        self.detect_readonly = detect_readonly
        self.memo: SchemaTable = {}
        self.visiting: list[str] = []

    @property
    def owner(self) -> Optional[str]:
        """Name of the component schema currently being translated."""
        return self.visiting[-1] if self.visiting else None

    def warn(self, category: WarningCategory, message: str) -> None:
        owner = self.owner
        subject = schema_subject(owner) if owner is not None else None
        self.log.add(category, message, subject=subject)


def translate(
    name: str,
    raw_schema: JSONObject,
    all_raw_schemas: RawSchemaTable,
    *,
    context: Optional[TranslationContext] = None,
) -> SchemaNode:
    """Translate one named schema, memoized by name within ``context``."""
    if context is None:
        context = TranslationContext(all_raw_schemas)

    cached = context.memo.get(name)
    if cached is not None:
        return cached
    if name in context.visiting:
        return SchemaNode(kind=SchemaKind.REFERENCE, ref_name=name)

    context.visiting.append(name)
    try:
        node = _translate_node(raw_schema, context, pointer=name)
    finally:
        context.visiting.pop()
    context.memo[name] = node
    return node


def translate_schemas(
    raw_schemas: RawSchemaTable,
    *,
    log: Optional[WarningLog] = None,
    policy: Optional[CompilerPolicy] = None,
    detect_readonly: bool = True,
) -> SchemaTable:
    """Translate every named schema, returning a table in document order."""
    context = TranslationContext(
        raw_schemas,
        log=log,
        policy=policy,
        detect_readonly=detect_readonly,
    )
    for name, raw_schema in raw_schemas.items():
        translate(name, raw_schema, raw_schemas, context=context)
    logger.debug("Translated %d schemas", len(context.memo))
    return {name: context.memo[name] for name in raw_schemas}


def translate_inline(
    raw_schema: JSONObject,
    context: TranslationContext,
    *,
    pointer: str,
) -> SchemaNode:
    """Translate an anonymous schema (for example an operation body)."""
    return _translate_node(raw_schema, context, pointer=pointer)


def _translate_node(raw: JSONValue, context: TranslationContext, *, pointer: str) -> SchemaNode:
    if not isinstance(raw, dict):
        return _unsupported(context, pointer, "schema is not a mapping")

    description = _optional_str(raw.get("description"))
    title = _optional_str(raw.get("title"))
    nullable = raw.get("nullable") is True

    if "$ref" in raw:
        node = _translate_ref(raw, context, pointer=pointer)
    elif "const" in raw:
        node = _literal_node(raw["const"])
    elif isinstance(raw.get("enum"), list):
        node = _translate_enum(raw["enum"], context, pointer=pointer)
    elif isinstance(raw.get("oneOf"), list) or isinstance(raw.get("anyOf"), list):
        keyword = "oneOf" if isinstance(raw.get("oneOf"), list) else "anyOf"
        node = _translate_union(raw[keyword], context, pointer=pointer, keyword=keyword)
    elif isinstance(raw.get("allOf"), list):
        node = _translate_intersection(raw["allOf"], context, pointer=pointer)
    elif isinstance(raw.get("type"), list):
        node = _translate_type_list(raw, context, pointer=pointer)
    else:
        node = _translate_typed(raw, context, pointer=pointer)

    updates: dict[str, object] = {}
    if description is not None and node.description is None:
        updates["description"] = description
    if title is not None and node.title is None:
        updates["title"] = title
    if nullable and not node.nullable:
        updates["nullable"] = True
    if "default" in raw:
        updates["default"] = raw["default"]
        updates["has_default"] = True
    if updates:
        node = dataclasses.replace(node, **updates)
    return node


def _translate_ref(raw: JSONObject, context: TranslationContext, *, pointer: str) -> SchemaNode:
    ref_value = raw["$ref"]
    target = schema_ref_name(raw)
    if target is None or target not in context.raw_schemas:
        context.warn(
            WarningCategory.REFERENCE,
            f"Unresolved reference {ref_value!r} at {pointer}; substituted unknown",
        )
        return SchemaNode(kind=SchemaKind.UNKNOWN)

    if target not in context.memo and target not in context.visiting:
        translate(target, context.raw_schemas[target], context.raw_schemas, context=context)
    return SchemaNode(kind=SchemaKind.REFERENCE, ref_name=target)


def _literal_node(value: JSONValue) -> SchemaNode:
    if value is None:
        return SchemaNode(kind=SchemaKind.UNKNOWN, nullable=True)
    return SchemaNode(kind=SchemaKind.ENUM, literal_values=(value,))


def _translate_enum(
    values: list[JSONValue],
    context: TranslationContext,
    *,
    pointer: str,
) -> SchemaNode:
    literals = [value for value in values if value is not None]
    nullable = len(literals) != len(values)
    literals = [value for value in literals if isinstance(value, (str, int, float, bool))]
    if not literals:
        return _unsupported(context, pointer, "enum declares no usable values")
    if len(literals) == 1:
        return SchemaNode(
            kind=SchemaKind.ENUM, literal_values=(literals[0],), nullable=nullable
        )
    return SchemaNode(
        kind=SchemaKind.UNION,
        members=tuple(
            SchemaNode(kind=SchemaKind.ENUM, literal_values=(value,)) for value in literals
        ),
        nullable=nullable,
    )


def _translate_union(
    members_raw: list[JSONValue],
    context: TranslationContext,
    *,
    pointer: str,
    keyword: str = "oneOf",
) -> SchemaNode:
    members: list[SchemaNode] = []
    nullable = False
    for index, member in enumerate(members_raw):
        if member == _NULL_SCHEMA:
            nullable = True
            continue
        members.append(_translate_node(member, context, pointer=f"{pointer}.{keyword}[{index}]"))

    if not members:
        return SchemaNode(kind=SchemaKind.UNKNOWN, nullable=nullable)
    if len(members) == 1:
        return dataclasses.replace(members[0], nullable=members[0].nullable or nullable)
    return SchemaNode(kind=SchemaKind.UNION, members=tuple(members), nullable=nullable)


def _translate_intersection(
    members_raw: list[JSONValue],
    context: TranslationContext,
    *,
    pointer: str,
) -> SchemaNode:
    members = tuple(
        _translate_node(member, context, pointer=f"{pointer}.allOf[{index}]")
        for index, member in enumerate(members_raw)
    )
    if not members:
        return _unsupported(context, pointer, "allOf declares no members")
    if len(members) == 1:
        return members[0]
    return SchemaNode(kind=SchemaKind.INTERSECTION, members=members)


def _translate_type_list(
    raw: JSONObject,
    context: TranslationContext,
    *,
    pointer: str,
) -> SchemaNode:
    declared = [item for item in raw["type"] if isinstance(item, str)]
    nullable = "null" in declared
    declared = [item for item in declared if item != "null"]
    if not declared:
        return SchemaNode(kind=SchemaKind.UNKNOWN, nullable=nullable)

    variants = [
        _translate_typed({**raw, "type": type_name}, context, pointer=pointer)
        for type_name in declared
    ]
    if len(variants) == 1:
        return dataclasses.replace(variants[0], nullable=nullable)
    return SchemaNode(kind=SchemaKind.UNION, members=tuple(variants), nullable=nullable)


def _translate_typed(raw: JSONObject, context: TranslationContext, *, pointer: str) -> SchemaNode:
    schema_type = raw.get("type")

    if schema_type == "null":
        return SchemaNode(kind=SchemaKind.UNKNOWN, nullable=True)
    if isinstance(schema_type, str) and schema_type in _PRIMITIVE_KINDS:
        return SchemaNode(
            kind=_PRIMITIVE_KINDS[schema_type],
            constraints=_constraints(raw, integer=schema_type == "integer"),
        )
    if schema_type == "array" or (schema_type is None and "items" in raw):
        return _translate_array(raw, context, pointer=pointer)
    if schema_type == "object" or (
        schema_type is None and ("properties" in raw or "additionalProperties" in raw)
    ):
        return _translate_object(raw, context, pointer=pointer)

    if schema_type is None:
        return _unsupported(context, pointer, "no type, $ref, enum or composition keyword")
    return _unsupported(context, pointer, f"unrecognized type {schema_type!r}")


def _translate_array(raw: JSONObject, context: TranslationContext, *, pointer: str) -> SchemaNode:
    items_raw = raw.get("items")
    if isinstance(items_raw, dict) and items_raw:
        items = _translate_node(items_raw, context, pointer=f"{pointer}[]")
    else:
        items = SchemaNode(kind=SchemaKind.UNKNOWN)
    return SchemaNode(kind=SchemaKind.ARRAY, items=items, constraints=_constraints(raw))


def _translate_object(raw: JSONObject, context: TranslationContext, *, pointer: str) -> SchemaNode:
    required_raw = raw.get("required")
    required = frozenset(
        item for item in required_raw if isinstance(item, str)
    ) if isinstance(required_raw, list) else frozenset()

    properties: dict[str, SchemaNode] = {}
    properties_raw = raw.get("properties")
    if isinstance(properties_raw, dict):
        for prop_name, prop_raw in properties_raw.items():
            prop_node = _translate_node(prop_raw, context, pointer=f"{pointer}.{prop_name}")
            if _is_readonly(prop_name, prop_raw, context) and not prop_node.readonly:
                prop_node = dataclasses.replace(prop_node, readonly=True)
            properties[prop_name] = prop_node

    additional: bool | SchemaNode | None = None
    additional_raw = raw.get("additionalProperties")
    if isinstance(additional_raw, bool):
        additional = additional_raw
    elif isinstance(additional_raw, dict):
        if additional_raw:
            additional = _translate_node(
                additional_raw, context, pointer=f"{pointer}.additionalProperties"
            )
        else:
            additional = True

    return SchemaNode(
        kind=SchemaKind.OBJECT,
        properties=properties,
        required=required,
        additional_properties=additional,
    )


def _is_readonly(name: str, raw: JSONValue, context: TranslationContext) -> bool:
    if isinstance(raw, dict) and (raw.get("readOnly") is True or raw.get("x-readonly") is True):
        return True
    return context.detect_readonly and context.policy.is_readonly_field(name)


def _constraints(raw: Mapping[str, JSONValue], *, integer: bool = False) -> SchemaConstraints:
    minimum = _number(raw.get("minimum"))
    maximum = _number(raw.get("maximum"))
    exclusive_minimum = _number(raw.get("exclusiveMinimum"))
    exclusive_maximum = _number(raw.get("exclusiveMaximum"))
    # OpenAPI 3.0 spells exclusivity as a boolean next to minimum/maximum.
    if raw.get("exclusiveMinimum") is True and minimum is not None:
        exclusive_minimum, minimum = minimum, None
    if raw.get("exclusiveMaximum") is True and maximum is not None:
        exclusive_maximum, maximum = maximum, None

    return SchemaConstraints(
        format=_optional_str(raw.get("format")),
        pattern=_optional_str(raw.get("pattern")),
        minimum=minimum,
        maximum=maximum,
        exclusive_minimum=exclusive_minimum,
        exclusive_maximum=exclusive_maximum,
        multiple_of=_number(raw.get("multipleOf")),
        min_length=_count(raw.get("minLength")),
        max_length=_count(raw.get("maxLength")),
        min_items=_count(raw.get("minItems")),
        max_items=_count(raw.get("maxItems")),
        unique_items=raw.get("uniqueItems") is True,
        integer=integer,
    )


def _unsupported(context: TranslationContext, pointer: str, reason: str) -> SchemaNode:
    context.warn(
        WarningCategory.UNSUPPORTED_SHAPE,
        f"Unsupported schema shape at {pointer} ({reason}); substituted unknown",
    )
    return SchemaNode(kind=SchemaKind.UNKNOWN)


def _optional_str(value: JSONValue) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number(value: JSONValue) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _count(value: JSONValue) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value
