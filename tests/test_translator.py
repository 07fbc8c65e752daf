"""Unit tests for schema translation and linking."""

from __future__ import annotations

from typing import Any

import pytest

from openapi_to_mcp_generator.diagnostics import StrictModeViolation, WarningCategory, WarningLog
from openapi_to_mcp_generator.linker import link_schemas
from openapi_to_mcp_generator.model_types import SchemaKind, SchemaNode
from openapi_to_mcp_generator.policy import CompilerPolicy
from openapi_to_mcp_generator.translator import TranslationContext, translate, translate_schemas
from .fixture_helpers import linked_fixture


def _ref(name: str) -> dict[str, Any]:
    return {"$ref": f"#/components/schemas/{name}"}


def _translate_one(schema: dict[str, Any], *, log: WarningLog | None = None) -> SchemaNode:
    return translate_schemas({"Subject": schema}, log=log)["Subject"]


def test_primitive_constraints_are_kept() -> None:
    node = _translate_one(
        {"type": "integer", "minimum": 1, "maximum": 10, "multipleOf": 2, "description": "Count."}
    )

    assert node.kind is SchemaKind.NUMBER
    assert node.constraints.integer
    assert node.constraints.minimum == 1
    assert node.constraints.maximum == 10
    assert node.constraints.multiple_of == 2
    assert node.description == "Count."


def test_openapi_30_boolean_exclusive_bounds_are_converted() -> None:
    node = _translate_one(
        {"type": "number", "minimum": 0, "exclusiveMinimum": True, "maximum": 5}
    )

    assert node.constraints.exclusive_minimum == 0
    assert node.constraints.minimum is None
    assert node.constraints.maximum == 5


def test_enum_becomes_union_of_literals() -> None:
    node = _translate_one({"type": "string", "enum": ["a", "b", None]})

    assert node.kind is SchemaKind.UNION
    assert node.nullable
    assert [member.literal_values for member in node.members] == [("a",), ("b",)]
    assert all(member.kind is SchemaKind.ENUM for member in node.members)


def test_single_value_enum_and_const_are_literals() -> None:
    assert _translate_one({"enum": ["only"]}).literal_values == ("only",)
    const = _translate_one({"const": 3})
    assert const.kind is SchemaKind.ENUM
    assert const.literal_values == (3,)


def test_null_member_of_one_of_marks_nullable() -> None:
    node = _translate_one({"oneOf": [{"type": "string"}, {"type": "null"}]})

    assert node.kind is SchemaKind.STRING
    assert node.nullable


def test_type_list_with_null() -> None:
    node = _translate_one({"type": ["integer", "null"]})

    assert node.kind is SchemaKind.NUMBER
    assert node.constraints.integer
    assert node.nullable


def test_mixed_type_list_becomes_union() -> None:
    node = _translate_one({"type": ["string", "boolean"]})

    assert node.kind is SchemaKind.UNION
    assert [member.kind for member in node.members] == [SchemaKind.STRING, SchemaKind.BOOLEAN]


def test_nullable_keyword_and_default_are_applied() -> None:
    node = _translate_one({"type": "string", "nullable": True, "default": "x"})

    assert node.nullable
    assert node.has_default
    assert node.default == "x"


def test_array_without_items_has_unknown_items() -> None:
    log = WarningLog()
    node = _translate_one({"type": "array"}, log=log)

    assert node.kind is SchemaKind.ARRAY
    assert node.items is not None and node.items.kind is SchemaKind.UNKNOWN
    assert len(log) == 0


def test_unsupported_shape_is_warned_and_unknown() -> None:
    log = WarningLog()
    node = _translate_one({"description": "opaque"}, log=log)

    assert node.kind is SchemaKind.UNKNOWN
    assert node.description == "opaque"
    (warning,) = log.entries()
    assert warning.category is WarningCategory.UNSUPPORTED_SHAPE
    assert warning.subject == "schema:Subject"


def test_union_member_warning_names_its_keyword() -> None:
    log = WarningLog()
    _translate_one({"anyOf": [{"type": "string"}, {"type": "file"}]}, log=log)

    (warning,) = log.entries()
    assert ".anyOf[1]" in warning.message
    assert ".oneOf" not in warning.message


def test_strict_mode_raises_on_unsupported_shape() -> None:
    with pytest.raises(StrictModeViolation, match="Strict mode"):
        _translate_one({"type": "file"}, log=WarningLog(strict=True))


def test_strict_mode_raises_on_unresolved_reference() -> None:
    with pytest.raises(StrictModeViolation) as excinfo:
        translate_schemas({"A": _ref("Missing")}, log=WarningLog(strict=True))
    assert excinfo.value.warning.category is WarningCategory.REFERENCE


def test_unresolved_reference_is_unknown() -> None:
    log = WarningLog()
    table = translate_schemas(
        {"A": {"type": "object", "properties": {"b": _ref("Missing")}}},
        log=log,
    )

    assert table["A"].properties["b"].kind is SchemaKind.UNKNOWN
    assert log.entries()[0].category is WarningCategory.REFERENCE


def test_references_stay_symbolic_and_cycles_terminate() -> None:
    raw = {
        "Employee": {"type": "object", "properties": {"manager": _ref("Manager")}},
        "Manager": {
            "type": "object",
            "properties": {"reports": {"type": "array", "items": _ref("Employee")}},
        },
    }

    table = translate_schemas(raw)

    manager_ref = table["Employee"].properties["manager"]
    assert manager_ref.kind is SchemaKind.REFERENCE
    assert manager_ref.ref_name == "Manager"
    reports = table["Manager"].properties["reports"]
    assert reports.items is not None and reports.items.ref_name == "Employee"


def test_translate_is_memoized_by_name() -> None:
    raw = {"A": {"type": "string"}}
    context = TranslationContext(raw)
    first = translate("A", raw["A"], raw, context=context)
    second = translate("A", {"type": "integer"}, raw, context=context)

    assert first is second


def test_readonly_markers_and_name_heuristic() -> None:
    node = _translate_one(
        {
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "secret": {"type": "string", "readOnly": True},
                "etag": {"type": "string", "x-readonly": True},
                "ownerId": {"type": "string"},
                "userId": {"type": "string"},
                "name": {"type": "string"},
            },
        }
    )

    readonly = {name for name, prop in node.properties.items() if prop.readonly}
    assert readonly == {"id", "secret", "etag", "ownerId"}


def test_readonly_detection_can_be_disabled() -> None:
    table = translate_schemas(
        {
            "A": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "token": {"readOnly": True, "type": "string"}},
            }
        },
        detect_readonly=False,
    )

    readonly = {name for name, prop in table["A"].properties.items() if prop.readonly}
    assert readonly == {"token"}


def test_readonly_policy_is_pluggable() -> None:
    policy = CompilerPolicy(is_readonly_field=lambda name: name.startswith("server_"))
    table = translate_schemas(
        {
            "A": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "server_rev": {"type": "integer"}},
            }
        },
        policy=policy,
    )

    readonly = {name for name, prop in table["A"].properties.items() if prop.readonly}
    assert readonly == {"server_rev"}


def test_alias_cycle_is_downgraded_once() -> None:
    log = WarningLog()
    table = translate_schemas({"A": _ref("B"), "B": _ref("A")}, log=log)

    linked = link_schemas(table, log=log)

    assert linked.table["A"].kind is SchemaKind.UNKNOWN
    assert linked.table["B"].kind is SchemaKind.REFERENCE
    assert [warning.category for warning in log.entries()] == [WarningCategory.REFERENCE]


def test_intersection_object_view_merges_members() -> None:
    _spec, linked, _operations = linked_fixture("library.yaml")

    view = linked.object_view(linked.table["Book"])

    assert view is not None
    properties, required = view
    assert list(properties) == ["id", "updated_at", "title", "format", "metadata"]
    assert required == frozenset({"id", "title"})
    assert linked.has_readonly("Book")
    assert linked.has_readonly("BookPage")
    assert not linked.has_readonly("LoanRequest")


def test_store_fixture_translates_without_warnings() -> None:
    log = WarningLog()
    _spec, linked, _operations = linked_fixture("store.yaml", log=log)

    assert len(log) == 0
    assert linked.table["Category"].properties["children"].items.ref_name == "Category"
    assert linked.table["User"].properties["id"].readonly
    assert linked.table["User"].properties["createdAt"].readonly
    assert not linked.table["Order"].properties["userId"].readonly


def test_readonly_detection_follows_nested_shapes() -> None:
    table = translate_schemas(
        {
            "Node": {
                "type": "object",
                "properties": {"label": {"type": "string"}, "next": _ref("Node")},
            },
            "Holder": {
                "type": "object",
                "properties": {
                    "wrapped": {
                        "type": "object",
                        "properties": {"etag": {"type": "string", "readOnly": True}},
                    }
                },
            },
            "Outer": {
                "type": "object",
                "properties": {"holders": {"type": "array", "items": _ref("Holder")}},
            },
            "Either": {"oneOf": [_ref("Node"), _ref("Outer")]},
        },
        detect_readonly=False,
    )

    linked = link_schemas(table)

    assert not linked.has_readonly("Node")
    assert linked.has_readonly("Holder")
    assert linked.has_readonly("Outer")
    assert linked.has_readonly("Either")
