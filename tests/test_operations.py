"""Tests for operation extraction and schema pruning."""

from __future__ import annotations

from pathlib import Path

from openapi_to_mcp_generator.loader import load_spec_document
from openapi_to_mcp_generator.model_types import OperationRecord
from openapi_to_mcp_generator.operations import extract_operations, schema_ref_for
from openapi_to_mcp_generator.pruner import (
    operation_root_names,
    prune_schemas,
    reachable_schema_names,
    referenced_names,
)
from .fixture_helpers import linked_fixture, load_fixture, write_spec

_SHARED_COMPONENTS_SPEC = """
openapi: 3.1.0
info:
  title: Shared components
  version: "1"
paths:
  /notes/{noteId}:
    parameters:
      - in: path
        name: noteId
        required: true
        description: path level
        schema:
          type: string
      - in: header
        name: X-Trace
        schema:
          type: string
    get:
      operationId: getNote
      parameters:
        - $ref: "#/components/parameters/NoteId"
        - in: query
          name: expand
          schema:
            type: boolean
      responses:
        "200":
          $ref: "#/components/responses/NoteResponse"
    put:
      operationId: putNote
      requestBody:
        $ref: "#/components/requestBodies/NoteBody"
      responses:
        "200":
          description: ok
          content:
            text/plain:
              schema:
                type: string
components:
  parameters:
    NoteId:
      in: path
      name: noteId
      description: operation level
      schema:
        type: integer
  requestBodies:
    NoteBody:
      content:
        application/json:
          schema:
            $ref: "#/components/schemas/Note"
  responses:
    NoteResponse:
      description: ok
      content:
        application/vnd.notes+json:
          schema:
            $ref: "#/components/schemas/Note"
  schemas:
    Note:
      type: object
      properties:
        text:
          type: string
"""


def _by_id(operations: list[OperationRecord]) -> dict[str, OperationRecord]:
    return {operation.operation_id or operation.label: operation for operation in operations}


def test_store_operations_are_flattened_in_document_order() -> None:
    operations = extract_operations(load_fixture("store.yaml"))

    assert [operation.label for operation in operations[:3]] == [
        "GET /users",
        "POST /users",
        "GET /users/{id}",
    ]
    by_id = _by_id(operations)

    list_users = by_id["listUsers"]
    assert [(p.location, p.name, p.required) for p in list_users.parameters] == [
        ("query", "limit", False)
    ]
    assert list_users.response_schema_refs["200"].item_name == "User"
    assert list_users.response_schema_refs["200"].is_array

    create_user = by_id["createUser"]
    assert create_user.request_schema_ref is not None
    assert create_user.request_schema_ref.name == "User"
    assert create_user.request_required
    assert create_user.response_schema_refs["201"].resolved_name == "User"

    get_user = by_id["getUser"]
    assert [(p.location, p.name, p.required) for p in get_user.parameters] == [
        ("path", "id", True)
    ]
    assert by_id["deleteUser"].response_schema_refs == {}


def test_shared_components_are_resolved_and_merged(tmp_path: Path) -> None:
    spec = load_spec_document(str(write_spec(tmp_path, _SHARED_COMPONENTS_SPEC)))
    by_id = _by_id(extract_operations(spec))

    get_note = by_id["getNote"]
    assert [(p.location, p.name) for p in get_note.parameters] == [
        ("path", "noteId"),
        ("query", "expand"),
    ]
    note_id = get_note.parameters[0]
    assert note_id.description == "operation level"
    assert note_id.schema == {"type": "integer"}
    assert note_id.required
    assert get_note.response_schema_refs["200"].name == "Note"

    put_note = by_id["putNote"]
    assert put_note.request_schema_ref is not None
    assert put_note.request_schema_ref.name == "Note"
    assert not put_note.request_required
    assert put_note.response_schema_refs["200"].resolved_name is None
    assert [p.name for p in put_note.parameters] == ["noteId"]


def test_schema_ref_for_union_members() -> None:
    ref = schema_ref_for(
        {
            "oneOf": [
                {"$ref": "#/components/schemas/Cat"},
                {"type": "string"},
                {"$ref": "#/components/schemas/Dog"},
            ]
        }
    )

    assert ref.name is None
    assert ref.item_name is None
    assert ref.member_names == ("Cat", "Dog")


def test_operation_roots_and_pruning() -> None:
    _spec, linked, operations = linked_fixture("store.yaml")

    roots = operation_root_names(operations)
    assert roots == ["User", "Order", "Widget", "Category", "Employee"]

    reachable = reachable_schema_names(linked.table, operations)
    assert "Orphan" not in reachable
    assert {"OrderItem", "Gadget", "Gizmo", "Part", "Manager"} <= reachable

    pruned = prune_schemas(linked.table, operations)
    assert list(pruned) == [name for name in linked.table if name != "Orphan"]


def test_referenced_names_are_not_followed() -> None:
    _spec, linked, _operations = linked_fixture("store.yaml")

    assert referenced_names(linked.table["Widget"]) == ["Gadget", "Gizmo"]
    assert referenced_names(linked.table["Category"]) == ["Category"]
    assert referenced_names(linked.table["Part"]) == []
