"""Drop component schemas that no operation can reach."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from .json_types import JSONValue
from .model_types import OperationRecord, SchemaKind, SchemaNode, SchemaTable
from .resolver import schema_ref_name

logger = logging.getLogger(__name__)


def operation_root_names(operations: Iterable[OperationRecord]) -> list[str]:
    """Component schema names referenced anywhere in operation bodies or responses."""
    roots: list[str] = []
    for operation in operations:
        schemas: list[JSONValue] = []
        if operation.request_schema_ref is not None:
            schemas.append(operation.request_schema_ref.schema)
        schemas.extend(ref.schema for ref in operation.response_schema_refs.values())
        for schema in schemas:
            for name in _raw_ref_names(schema):
                if name not in roots:
                    roots.append(name)
    return roots


def _raw_ref_names(node: JSONValue) -> Iterator[str]:
    if isinstance(node, list):
        for item in node:
            yield from _raw_ref_names(item)
        return
    if not isinstance(node, dict):
        return
    name = schema_ref_name(node)
    if name is not None:
        yield name
    for key, value in node.items():
        if key != "$ref":
            yield from _raw_ref_names(value)


def _child_nodes(node: SchemaNode) -> Iterator[SchemaNode]:
    yield from node.properties.values()
    if node.items is not None:
        yield node.items
    yield from node.members
    if isinstance(node.additional_properties, SchemaNode):
        yield node.additional_properties


def referenced_names(node: SchemaNode) -> list[str]:
    """Names of schemas a node refers to, without following them."""
    names: list[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.kind is SchemaKind.REFERENCE and current.ref_name is not None:
            if current.ref_name not in names:
                names.append(current.ref_name)
            continue
        stack.extend(reversed(list(_child_nodes(current))))
    return names


def reachable_schema_names(table: SchemaTable, operations: Iterable[OperationRecord]) -> set[str]:
    """Transitive closure over reference, property, item and member edges."""
    visited: set[str] = set()
    pending = [name for name in operation_root_names(operations) if name in table]
    while pending:
        name = pending.pop()
        if name in visited:
            continue
        visited.add(name)
        for target in referenced_names(table[name]):
            if target in table and target not in visited:
                pending.append(target)
    return visited


def prune_schemas(table: SchemaTable, operations: Iterable[OperationRecord]) -> SchemaTable:
    """Return the reachable subset, keeping the original table order."""
    reachable = reachable_schema_names(table, operations)
    pruned = {name: node for name, node in table.items() if name in reachable}
    dropped = [name for name in table if name not in reachable]
    if dropped:
        logger.debug("Pruned unreachable schemas: %s", ", ".join(dropped))
    return pruned
