"""Group operations into resources and assign method slots."""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable
from dataclasses import dataclass, field
from typing import Optional

from .diagnostics import WarningCategory, WarningLog, resource_subject
from .model_types import CRUD_SLOTS, MethodSlot, OperationRecord, ResourceGroup
from .naming import (
    ends_with_parameter,
    is_path_parameter,
    last_static_segment,
    path_segments,
    resource_name_for_path,
    snake_case,
    unique_name,
)
from .policy import DEFAULT_POLICY, CompilerPolicy

logger = logging.getLogger(__name__)

_READ_SLOTS = ("get", "list")
_SLOT_BY_METHOD = {"post": "create", "put": "update", "delete": "delete"}


def select_primary_schema(
    operation: OperationRecord,
    known: Container[str],
) -> Optional[tuple[str, bool]]:
    """Pick the schema an operation returns, and whether it is wrapped in an array.

    ``200`` is inspected first, then the other ``2xx`` statuses in ascending
    order. Each status is checked for a direct reference, then an array of
    a reference, then the first known union member.
    """
    for status in _success_statuses(operation):
        ref = operation.response_schema_refs[status]
        if ref.name is not None and ref.name in known:
            return ref.name, False
        if ref.item_name is not None and ref.item_name in known:
            return ref.item_name, True
        for member in ref.member_names:
            if member in known:
                return member, False
    return None


def _success_statuses(operation: OperationRecord) -> list[str]:
    statuses = [status for status in operation.response_schema_refs if status.startswith("2")]
    others = sorted(
        (status for status in statuses if status != "200"),
        key=lambda status: (not status.isdigit(), status),
    )
    return (["200"] if "200" in statuses else []) + others


def crud_slot_for(operation: OperationRecord) -> Optional[str]:
    """Map an operation to its CRUD slot, or ``None`` for custom methods."""
    if operation.method == "get":
        return "get" if ends_with_parameter(operation.path) else "list"
    return _SLOT_BY_METHOD.get(operation.method)


def custom_method_name(operation: OperationRecord) -> str:
    """Base name for an operation exposed as a custom method."""
    if operation.operation_id:
        return snake_case(operation.operation_id)
    return f"{operation.method}_{last_static_segment(operation.path)}"


def uri_template_for(name: str, get_path: Optional[str]) -> str:
    """URI template of a resource: the ``get`` path, else ``<name>/{id}``."""
    if get_path is None:
        return f"{name}/{{id}}"
    segments = [
        f"{{{snake_case(segment[1:-1])}}}" if is_path_parameter(segment) else segment
        for segment in path_segments(get_path)
    ]
    return "/".join(segments)


@dataclass
class _GroupBuilder:
    name: str
    crud: dict[str, MethodSlot] = field(default_factory=dict)
    custom: dict[str, MethodSlot] = field(default_factory=dict)
    paths: list[str] = field(default_factory=list)

    def taken_names(self) -> set[str]:
        return {*CRUD_SLOTS, *self.custom}

    def ordered_slots(self) -> dict[str, MethodSlot]:
        slots = {slot: self.crud[slot] for slot in CRUD_SLOTS if slot in self.crud}
        slots.update(self.custom)
        return slots


def synthesize_resources(
    operations: Iterable[OperationRecord],
    known: Container[str],
    *,
    log: Optional[WarningLog] = None,
    policy: Optional[CompilerPolicy] = None,
) -> list[ResourceGroup]:
    """Group operations by resource name, in order of first appearance."""
    log = log if log is not None else WarningLog()
    policy = policy if policy is not None else DEFAULT_POLICY
    builders: dict[str, _GroupBuilder] = {}

    for operation in operations:
        name = resource_name_for_path(operation.path)
        if policy.is_reserved_resource_name(name):
            log.add(
                WarningCategory.RESOURCE_NAMING,
                f"Dropped {operation.label}: path resolves to reserved resource name {name!r}",
            )
            continue

        builder = builders.setdefault(name, _GroupBuilder(name=name))
        if operation.path not in builder.paths:
            builder.paths.append(operation.path)

        slot = crud_slot_for(operation)
        if slot is not None and slot not in builder.crud:
            builder.crud[slot] = _method_slot(slot, operation, known, custom=False)
            continue

        if slot is not None:
            holder = builder.crud[slot].operation
            log.add(
                WarningCategory.SLOT_CONFLICT,
                f"{operation.label} competes with {holder.label} for the {slot!r} slot "
                f"of resource {name!r}; exposed as a custom method",
                subject=resource_subject(name),
            )
        custom_name = unique_name(custom_method_name(operation), builder.taken_names())
        builder.custom[custom_name] = _method_slot(custom_name, operation, known, custom=True)

    resources = [_finish(builder, known, log) for builder in builders.values()]
    logger.debug("Synthesized resources: %s", ", ".join(group.name for group in resources))
    return resources


def _method_slot(
    slot: str,
    operation: OperationRecord,
    known: Container[str],
    *,
    custom: bool,
) -> MethodSlot:
    response_name, response_is_array = select_primary_schema(operation, known) or (None, False)
    request = operation.request_schema_ref

    if slot == "delete":
        return MethodSlot(
            slot=slot,
            operation=operation,
            writes=request is not None,
            response_schema_name=response_name,
            response_is_array=response_is_array,
        )

    if slot in ("create", "update") or (custom and request is not None):
        schema_name = request.resolved_name if request is not None else None
        if schema_name is not None and schema_name not in known:
            schema_name = None
        return MethodSlot(
            slot=slot,
            operation=operation,
            schema_name=schema_name,
            is_array=request is not None and request.is_array and schema_name is not None,
            writes=request is not None,
            custom=custom,
            response_schema_name=response_name,
            response_is_array=response_is_array,
        )

    return MethodSlot(
        slot=slot,
        operation=operation,
        schema_name=response_name,
        is_array=response_is_array,
        custom=custom,
        response_schema_name=response_name,
        response_is_array=response_is_array,
    )


def _finish(builder: _GroupBuilder, known: Container[str], log: WarningLog) -> ResourceGroup:
    slots = builder.ordered_slots()
    primary = _resource_primary_schema(slots, known)
    if primary is None:
        log.add(
            WarningCategory.FALLBACK_SCHEMA,
            f"No schema found for resource {builder.name!r}; its data is exposed untyped",
            subject=resource_subject(builder.name),
        )

    get_slot = builder.crud.get("get")
    return ResourceGroup(
        name=builder.name,
        uri_template=uri_template_for(
            builder.name, get_slot.operation.path if get_slot is not None else None
        ),
        primary_schema_name=primary,
        slots=slots,
        paths=tuple(builder.paths),
    )


def _resource_primary_schema(slots: dict[str, MethodSlot], known: Container[str]) -> Optional[str]:
    for slot in _READ_SLOTS:
        method_slot = slots.get(slot)
        if method_slot is not None and method_slot.schema_name is not None:
            return method_slot.schema_name
    for method_slot in slots.values():
        primary = select_primary_schema(method_slot.operation, known)
        if primary is not None:
            return primary[0]
    for method_slot in slots.values():
        if method_slot.schema_name is not None:
            return method_slot.schema_name
    return None
