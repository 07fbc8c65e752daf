"""Second translation pass: check references and answer graph queries."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from .diagnostics import WarningCategory, WarningLog, schema_subject
from .model_types import SchemaKind, SchemaNode, SchemaTable

logger = logging.getLogger(__name__)


class LinkedSchemas:
    """Translated schema table whose references are known to resolve."""

    def __init__(self, table: SchemaTable) -> None:
        self._table = table

    @property
    def table(self) -> SchemaTable:
        return self._table

    def names(self) -> tuple[str, ...]:
        return tuple(self._table)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def get(self, name: str) -> Optional[SchemaNode]:
        return self._table.get(name)

    def resolve(self, node: SchemaNode) -> SchemaNode:
        """Follow reference chains until a structural node is reached."""
        seen: set[str] = set()
        current = node
        while current.kind is SchemaKind.REFERENCE and current.ref_name is not None:
            if current.ref_name in seen or current.ref_name not in self._table:
                return SchemaNode(kind=SchemaKind.UNKNOWN)
            seen.add(current.ref_name)
            current = self._table[current.ref_name]
        return current

    def object_view(
        self,
        node: SchemaNode,
    ) -> Optional[tuple[dict[str, SchemaNode], frozenset[str]]]:
        """Return merged properties and required names for object-like nodes.

        Objects map to themselves; intersections whose members all resolve
        to objects are flattened, later members overriding earlier ones.
        Anything else returns ``None``.
        """
        return self._object_view(node, visiting=frozenset())

    def _object_view(
        self,
        node: SchemaNode,
        *,
        visiting: frozenset[str],
    ) -> Optional[tuple[dict[str, SchemaNode], frozenset[str]]]:
        if node.kind is SchemaKind.REFERENCE:
            if node.ref_name is None or node.ref_name in visiting:
                return None
            target = self._table.get(node.ref_name)
            if target is None:
                return None
            return self._object_view(target, visiting=visiting | {node.ref_name})

        if node.kind is SchemaKind.OBJECT:
            return dict(node.properties), node.required

        if node.kind is SchemaKind.INTERSECTION:
            properties: dict[str, SchemaNode] = {}
            required: set[str] = set()
            for member in node.members:
                view = self._object_view(member, visiting=visiting)
                if view is None:
                    return None
                member_properties, member_required = view
                properties.update(member_properties)
                required.update(member_required)
            return properties, frozenset(required)

        return None

    def has_readonly(self, name: str) -> bool:
        """Whether the named schema has readonly properties at any depth.

        Nested objects, array items, union and intersection members,
        additional properties and referenced schemas are all followed.
        """
        node = self._table.get(name)
        if node is None:
            return False
        return self.node_has_readonly(node, visiting=frozenset({name}))

    def node_has_readonly(self, node: SchemaNode, *, visiting: frozenset[str] = frozenset()) -> bool:
        """Whether a node carries readonly properties, stopping at reference cycles."""
        if node.kind is SchemaKind.REFERENCE:
            if node.ref_name is None or node.ref_name in visiting:
                return False
            target = self._table.get(node.ref_name)
            if target is None:
                return False
            return self.node_has_readonly(target, visiting=visiting | {node.ref_name})

        children: list[SchemaNode] = []
        view = self.object_view(node)
        if view is not None:
            properties, _required = view
            if any(prop.readonly for prop in properties.values()):
                return True
            children.extend(properties.values())
        if node.items is not None:
            children.append(node.items)
        if node.kind is SchemaKind.UNION or (node.kind is SchemaKind.INTERSECTION and view is None):
            children.extend(node.members)
        if isinstance(node.additional_properties, SchemaNode):
            children.append(node.additional_properties)
        return any(self.node_has_readonly(child, visiting=visiting) for child in children)


def link_schemas(table: SchemaTable, *, log: Optional[WarningLog] = None) -> LinkedSchemas:
    """Check reference targets and break pure alias cycles.

    A schema that is nothing but a chain of references back to itself has
    no structure to emit; it is downgraded to ``unknown`` with a warning.
    """
    log = log if log is not None else WarningLog()
    linked: SchemaTable = {}

    for name, node in table.items():
        linked[name] = _link_node(name, node, table, log)

    for name, node in linked.items():
        if node.kind is not SchemaKind.REFERENCE:
            continue
        if _alias_cycle(name, linked):
            log.add(
                WarningCategory.REFERENCE,
                f"Schema {name!r} is a reference cycle with no structure; substituted unknown",
                subject=schema_subject(name),
            )
            linked[name] = dataclasses.replace(node, kind=SchemaKind.UNKNOWN, ref_name=None)

    logger.debug("Linked %d schemas", len(linked))
    return LinkedSchemas(linked)


def _alias_cycle(name: str, table: SchemaTable) -> bool:
    seen = {name}
    current = table[name]
    while current.kind is SchemaKind.REFERENCE and current.ref_name is not None:
        if current.ref_name in seen:
            return True
        seen.add(current.ref_name)
        target = table.get(current.ref_name)
        if target is None:
            return False
        current = target
    return False


def _link_node(owner: str, node: SchemaNode, table: SchemaTable, log: WarningLog) -> SchemaNode:
    if node.kind is SchemaKind.REFERENCE:
        if node.ref_name in table:
            return node
        log.add(
            WarningCategory.REFERENCE,
            f"Reference to unknown schema {node.ref_name!r} in {owner!r}; substituted unknown",
            subject=schema_subject(owner),
        )
        return dataclasses.replace(node, kind=SchemaKind.UNKNOWN, ref_name=None)

    updates: dict[str, object] = {}
    if node.properties:
        updates["properties"] = {
            key: _link_node(owner, prop, table, log) for key, prop in node.properties.items()
        }
    if node.items is not None:
        updates["items"] = _link_node(owner, node.items, table, log)
    if node.members:
        updates["members"] = tuple(_link_node(owner, member, table, log) for member in node.members)
    if isinstance(node.additional_properties, SchemaNode):
        updates["additional_properties"] = _link_node(
            owner, node.additional_properties, table, log
        )
    if not updates:
        return node
    return dataclasses.replace(node, **updates)
