"""Internal datatypes shared by the compilation pipeline."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from .json_types import JSONObject, JSONValue

if TYPE_CHECKING:
    from .policy import CompilerPolicy
    from .verify import VerificationReport


@dataclass(frozen=True)
class SpecDocument:
    """A loaded and structurally valid OpenAPI document."""

    source: str
    openapi_version: str
    title: str
    api_version: str
    description: Optional[str]
    base_url: Optional[str]
    schemas: Mapping[str, JSONObject]
    paths: tuple[tuple[str, str, JSONObject, JSONObject], ...]
    document: JSONObject


class SchemaKind(enum.Enum):
    """Shape of a translated schema node."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ENUM = "enum"
    UNION = "union"
    INTERSECTION = "intersection"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SchemaConstraints:
    """Validation keywords carried over from the source schema."""

    format: Optional[str] = None
    pattern: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: bool = False
    integer: bool = False


@dataclass(frozen=True)
class SchemaNode:
    """One translated schema.

    ``reference`` nodes only carry ``ref_name``; the target is looked up in
    the translated schema table when the graph is linked.
    """

    kind: SchemaKind
    properties: Mapping[str, SchemaNode] = field(default_factory=dict)
    required: frozenset[str] = frozenset()
    items: Optional[SchemaNode] = None
    members: tuple[SchemaNode, ...] = ()
    literal_values: tuple[JSONValue, ...] = ()
    constraints: SchemaConstraints = SchemaConstraints()
    additional_properties: Union[bool, SchemaNode, None] = None
    readonly: bool = False
    nullable: bool = False
    description: Optional[str] = None
    title: Optional[str] = None
    default: JSONValue = None
    has_default: bool = False
    ref_name: Optional[str] = None


type SchemaTable = dict[str, SchemaNode]


@dataclass(frozen=True)
class ParameterRecord:
    """A path or query parameter of an operation."""

    name: str
    location: str
    required: bool
    schema: JSONObject
    description: Optional[str] = None


@dataclass(frozen=True)
class SchemaRef:
    """Schema references found in a request body or response media type."""

    schema: JSONObject
    name: Optional[str] = None
    item_name: Optional[str] = None
    member_names: tuple[str, ...] = ()

    @property
    def resolved_name(self) -> Optional[str]:
        """Name of the directly expressible schema, if any."""
        return self.name or self.item_name

    @property
    def is_array(self) -> bool:
        """Whether the reference is wrapped in an array."""
        return self.name is None and self.item_name is not None


@dataclass(frozen=True)
class OperationRecord:
    """One HTTP operation flattened from the ``paths`` object."""

    method: str
    path: str
    operation_id: Optional[str]
    summary: Optional[str]
    description: Optional[str]
    parameters: tuple[ParameterRecord, ...] = ()
    request_schema_ref: Optional[SchemaRef] = None
    request_required: bool = False
    response_schema_refs: Mapping[str, SchemaRef] = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Human readable ``METHOD /path`` label."""
        return f"{self.method.upper()} {self.path}"


CRUD_SLOTS: tuple[str, ...] = ("get", "list", "create", "update", "delete")


@dataclass(frozen=True)
class MethodSlot:
    """An operation assigned to a CRUD or custom method of a resource."""

    slot: str
    operation: OperationRecord
    schema_name: Optional[str] = None
    is_array: bool = False
    writes: bool = False
    custom: bool = False
    response_schema_name: Optional[str] = None
    response_is_array: bool = False


@dataclass(frozen=True)
class ResourceGroup:
    """Operations sharing one URI shape, exposed as a single resource."""

    name: str
    uri_template: str
    primary_schema_name: Optional[str]
    slots: Mapping[str, MethodSlot]
    paths: tuple[str, ...]

    def schema_names(self) -> tuple[str, ...]:
        """Every schema the resource module needs, primary schema first."""
        names: list[str] = []
        if self.primary_schema_name is not None:
            names.append(self.primary_schema_name)
        for method_slot in self.slots.values():
            for name in (method_slot.schema_name, method_slot.response_schema_name):
                if name is not None and name not in names:
                    names.append(name)
        return tuple(names)


@dataclass(frozen=True)
class SchemaSymbol:
    """Python names chosen for one emitted schema."""

    schema_name: str
    module_name: str
    class_name: str
    alias_name: str
    write_class_name: Optional[str] = None


@dataclass(frozen=True)
class FieldDef:
    """Represents a single pydantic model field."""

    name: str
    source_name: str
    annotation: str
    required: bool
    default: JSONValue = None
    has_default: bool = False
    description: Optional[str] = None
    readonly: bool = False


@dataclass(frozen=True)
class ModelDef:
    """Represents a generated pydantic model class."""

    name: str
    is_root: bool
    root_annotation: Optional[str]
    fields: tuple[FieldDef, ...]
    docstring: Optional[str] = None
    title: Optional[str] = None
    extra_behavior: Optional[str] = None
    additional_properties_annotation: Optional[str] = None


@dataclass(frozen=True)
class SchemaModule:
    """Models and imports for one generated schema module."""

    symbol: SchemaSymbol
    models: tuple[ModelDef, ...]
    imported_schemas: tuple[str, ...]
    description: Optional[str] = None
    imported_write_schemas: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompileOptions:
    """Switches accepted by :func:`compile_spec`."""

    verbose: bool = False
    strict_mode: bool = False
    format: bool = True
    verify: bool = False
    overwrite: bool = False
    detect_readonly: bool = True
    policy: Optional[CompilerPolicy] = None
    timeout: float = 30.0


@dataclass(frozen=True)
class CompileResult:
    """Outcome of one compilation run."""

    output_dir: Path
    package_name: str
    warnings: tuple[str, ...]
    files: tuple[str, ...]
    schema_names: tuple[str, ...]
    resource_names: tuple[str, ...]
    verification_report: Optional[VerificationReport] = None
