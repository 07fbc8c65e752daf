"""Naming conventions the compiler applies as overridable policy."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

_SERVER_MANAGED_FIELDS = frozenset({"id", "createdAt", "updatedAt", "created_at", "updated_at"})
_WRITABLE_RELATIONS = frozenset({"authorId", "userId"})
_RESERVED_RESOURCE_NAMES = frozenset({"", "api", "resource"})


def default_is_readonly_field(name: str) -> bool:
    """Return whether a property name looks server managed.

    Covers ``id``, creation/update timestamps, and ``...Id`` references
    other than the relations clients are expected to set.
    """
    if name in _SERVER_MANAGED_FIELDS:
        return True
    return name.endswith("Id") and name not in _WRITABLE_RELATIONS


def default_is_reserved_resource_name(name: str) -> bool:
    """Return whether a computed resource name is a placeholder."""
    return name in _RESERVED_RESOURCE_NAMES


@dataclass(frozen=True)
class CompilerPolicy:
    """Best-effort heuristics, each a pure function of a name."""

    is_readonly_field: Callable[[str], bool] = default_is_readonly_field
    is_reserved_resource_name: Callable[[str], bool] = default_is_reserved_resource_name


DEFAULT_POLICY = CompilerPolicy()
