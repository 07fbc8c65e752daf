"""Warning collection and strict-mode escalation for one compilation run."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class WarningCategory(enum.Enum):
    """Kinds of recoverable problems met while compiling."""

    REFERENCE = "reference"
    UNSUPPORTED_SHAPE = "unsupported-shape"
    RESOURCE_NAMING = "resource-naming"
    SLOT_CONFLICT = "slot-conflict"
    FALLBACK_SCHEMA = "fallback-schema"
    MISSING_SCHEMAS = "missing-schemas"


_STRICT_CATEGORIES = frozenset({WarningCategory.REFERENCE, WarningCategory.UNSUPPORTED_SHAPE})


class StrictModeViolation(RuntimeError):
    """Raised when strict mode turns a schema substitution into a failure."""

    def __init__(self, warning: CompileWarning) -> None:
        super().__init__(f"Strict mode: {warning.message}")
        self.warning = warning


@dataclass(frozen=True)
class CompileWarning:
    """A recorded warning.

    ``subject`` names the schema (``schema:<Name>``) or resource
    (``resource:<name>``) whose generated file should carry the warning.
    """

    category: WarningCategory
    message: str
    subject: Optional[str] = None

    def __str__(self) -> str:
        return self.message


def schema_subject(name: str) -> str:
    """Subject key for warnings attached to a schema module."""
    return f"schema:{name}"


def resource_subject(name: str) -> str:
    """Subject key for warnings attached to a resource module."""
    return f"resource:{name}"


class WarningLog:
    """Ordered, de-duplicated warning log scoped to one run."""

    def __init__(self, *, strict: bool = False) -> None:
        self._strict = strict
        self._entries: list[CompileWarning] = []

    @property
    def strict(self) -> bool:
        """Whether substitutions are fatal."""
        return self._strict

    def add(
        self,
        category: WarningCategory,
        message: str,
        *,
        subject: Optional[str] = None,
    ) -> CompileWarning:
        """Record a warning, raising in strict mode for substitutions."""
        warning = CompileWarning(category=category, message=message, subject=subject)
        if self._strict and category in _STRICT_CATEGORIES:
            raise StrictModeViolation(warning)
        if warning not in self._entries:
            self._entries.append(warning)
            logger.debug("Recorded %s warning: %s", category.value, message)
        return warning

    def entries(self) -> tuple[CompileWarning, ...]:
        """All warnings in the order they were recorded."""
        return tuple(self._entries)

    def for_subject(self, subject: str) -> tuple[CompileWarning, ...]:
        """Warnings attached to one generated module."""
        return tuple(entry for entry in self._entries if entry.subject == subject)

    def unattached(self, attached_subjects: set[str]) -> tuple[CompileWarning, ...]:
        """Warnings whose subject has no generated module of its own."""
        return tuple(
            entry for entry in self._entries if entry.subject not in attached_subjects
        )

    def messages(self) -> tuple[str, ...]:
        """Warning messages as plain strings."""
        return tuple(entry.message for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)
