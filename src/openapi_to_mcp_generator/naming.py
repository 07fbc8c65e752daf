"""Naming helpers for resources, modules and Python identifiers."""

from __future__ import annotations

import keyword
import re
from collections.abc import Iterable

HTTP_METHODS: tuple[str, ...] = (
    "get",
    "put",
    "post",
    "delete",
    "patch",
    "head",
    "options",
    "trace",
)

_IDENTIFIER_SANITIZE_RE = re.compile(r"[^0-9a-zA-Z_]+")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")
_PATH_PARAM_RE = re.compile(r"^\{(?P<name>[^{}]+)\}$")
_CAMEL_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY_RE = re.compile(r"([a-z\d])([A-Z])")
_WORD_SPLIT_RE = re.compile(r"[^0-9a-zA-Z]+")


def sanitize_identifier(raw: str, *, lowercase: bool = True) -> str:
    """Convert arbitrary text into a valid Python identifier."""
    text = raw.lower() if lowercase else raw
    text = _IDENTIFIER_SANITIZE_RE.sub("_", text)
    text = _MULTIPLE_UNDERSCORES_RE.sub("_", text).strip("_")
    if not text:
        text = "root"
    if text[0].isdigit():
        text = f"x_{text}"
    if keyword.iskeyword(text):
        text = f"{text}_"
    return text


def snake_case(raw: str) -> str:
    """Convert camelCase, kebab-case or free text to snake_case."""
    text = _CAMEL_ACRONYM_RE.sub(r"\1_\2", raw)
    text = _CAMEL_BOUNDARY_RE.sub(r"\1_\2", text)
    return sanitize_identifier(text)


def class_name(raw: str) -> str:
    """Convert a name to a PascalCase class name, keeping inner capitals."""
    parts = [part for part in _WORD_SPLIT_RE.split(raw) if part]
    name = "".join(part[0].upper() + part[1:] for part in parts)
    if not name:
        return "Model"
    if name[0].isdigit():
        name = f"X{name}"
    if keyword.iskeyword(name):
        name = f"{name}_"
    return name


def is_path_parameter(segment: str) -> bool:
    """Return whether a path segment is a ``{parameter}`` placeholder."""
    return _PATH_PARAM_RE.match(segment) is not None


def path_segments(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    return [segment for segment in path.split("/") if segment]


def path_parameter_names(path: str) -> list[str]:
    """Return parameter names in the order they appear in the path."""
    names: list[str] = []
    for segment in path_segments(path):
        match = _PATH_PARAM_RE.match(segment)
        if match:
            names.append(match.group("name"))
    return names


def ends_with_parameter(path: str) -> bool:
    """Return whether the last path segment is a parameter."""
    segments = path_segments(path)
    return bool(segments) and is_path_parameter(segments[-1])


def resource_name_for_path(path: str) -> str:
    """Compute the resource name a path belongs to.

    ``/users`` and ``/users/{id}`` map to ``users``; ``/users/{id}/orders``
    maps to ``users_orders``; deeper paths keep their first two static
    segments. Paths without static segments map to ``""``.
    """
    static_segments = [
        snake_case(segment)
        for segment in path_segments(path)
        if not is_path_parameter(segment) and _IDENTIFIER_SANITIZE_RE.sub("", segment).strip("_")
    ]
    return "_".join(static_segments[:2])


def last_static_segment(path: str) -> str:
    """Return the last non-parameter segment of a path, snake-cased."""
    for segment in reversed(path_segments(path)):
        if not is_path_parameter(segment):
            return snake_case(segment)
    return "root"


def unique_name(base: str, used: Iterable[str], *, separator: str = "_") -> str:
    """Return ``base`` or the first ``base<sep>N`` not present in ``used``."""
    taken = set(used)
    if base not in taken:
        return base
    suffix = 2
    while f"{base}{separator}{suffix}" in taken:
        suffix += 1
    return f"{base}{separator}{suffix}"
