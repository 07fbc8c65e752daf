"""Convert linked schema nodes into pydantic model definitions."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from pydantic import BaseModel, RootModel

from .json_types import JSONObject, JSONValue
from .linker import LinkedSchemas
from .model_types import FieldDef, ModelDef, SchemaKind, SchemaModule, SchemaNode, SchemaSymbol
from .naming import class_name, snake_case, unique_name

_BASEMODEL_RESERVED = set(dir(BaseModel))
_ROOTMODEL_RESERVED = set(dir(RootModel))
_BUILTIN_IDENTIFIER_RESERVED = {
    "bool",
    "bytes",
    "date",
    "datetime",
    "dict",
    "float",
    "int",
    "list",
    "set",
    "str",
    "tuple",
    "type",
}

STRING_FORMAT_TYPES: dict[str, str] = {
    "email": "EmailStr",
    "uri": "AnyUrl",
    "url": "AnyUrl",
    "uuid": "UUID",
    "date-time": "datetime",
    "date": "date",
    "ipv4": "IPv4Address",
    "ipv6": "IPv6Address",
}

# Format types whose validated value is still a ``str``.
_STR_FORMAT_TYPES = frozenset({"EmailStr"})

_PARAMETER_PRIMITIVES = {
    "string": "str",
    "integer": "int",
    "number": "float",
    "boolean": "bool",
}

ANY_ANNOTATION = "Any"


def is_model_object(node: SchemaNode, linked: LinkedSchemas) -> bool:
    """Whether a top-level schema is emitted as a ``BaseModel`` with fields."""
    if node.kind is SchemaKind.OBJECT:
        return True
    return node.kind is SchemaKind.INTERSECTION and linked.object_view(node) is not None


def build_symbol_table(linked: LinkedSchemas) -> dict[str, SchemaSymbol]:
    """Choose module, class and alias names for every schema, in table order."""
    symbols: dict[str, SchemaSymbol] = {}
    used_modules: set[str] = {"__init__"}
    used_names: set[str] = set()

    for name, node in linked.table.items():
        base = class_name(name)
        module_name = unique_name(snake_case(name), used_modules)
        used_modules.add(module_name)

        read_class = unique_name(f"{base}Schema", used_names, separator="")
        used_names.add(read_class)
        write_class = None
        if is_model_object(node, linked) and linked.has_readonly(name):
            write_class = unique_name(f"{base}WriteSchema", used_names, separator="")
            used_names.add(write_class)
        alias_name = unique_name(base, used_names, separator="")
        used_names.add(alias_name)

        symbols[name] = SchemaSymbol(
            schema_name=name,
            module_name=module_name,
            class_name=read_class,
            alias_name=alias_name,
            write_class_name=write_class,
        )
    return symbols


class SchemaModelBuilder:
    """Create model definitions for schema modules.

    One builder is used for a whole run so nested class names stay unique
    across modules; the ``schemas`` package imports every class into one
    namespace.
    """

    def __init__(self, linked: LinkedSchemas, symbols: dict[str, SchemaSymbol]) -> None:
        self._linked = linked
        self._symbols = symbols
        self._used_names: set[str] = set()
        for symbol in symbols.values():
            self._used_names.update(
                name
                for name in (symbol.class_name, symbol.alias_name, symbol.write_class_name)
                if name is not None
            )
        self._models: list[ModelDef] = []
        self._imports: list[str] = []
        self._write_imports: list[str] = []
        self._nested: dict[tuple[int, bool], str] = {}
        self._write_mode = False
        self._current: Optional[str] = None

    def build_module(self, name: str) -> SchemaModule:
        """Build the read model, nested models and write variant of one schema."""
        symbol = self._symbols[name]
        node = self._linked.table[name]
        self._models = []
        self._imports = []
        self._write_imports = []
        self._nested = {}
        self._current = name

        hint = class_name(name)
        if is_model_object(node, self._linked):
            self._build_object_model(symbol.class_name, node, hint=hint)
            if symbol.write_class_name is not None:
                self._build_write_model(symbol.write_class_name, node, hint=hint)
        else:
            annotation = self.annotation(node, hint=f"{hint}Value")
            self._models.append(
                ModelDef(
                    name=symbol.class_name,
                    is_root=True,
                    root_annotation=annotation,
                    fields=(),
                    docstring=node.description,
                    title=node.title,
                )
            )

        return SchemaModule(
            symbol=symbol,
            models=tuple(self._models),
            imported_schemas=tuple(self._imports),
            description=node.description,
            imported_write_schemas=tuple(self._write_imports),
        )

    def annotation(self, node: SchemaNode, *, hint: str) -> str:
        """Return a Python annotation expression for a node."""
        annotation = self._base_annotation(node, hint=hint)
        if node.nullable and annotation != ANY_ANNOTATION and not annotation.startswith("Optional["):
            return f"Optional[{annotation}]"
        return annotation

    def _base_annotation(self, node: SchemaNode, *, hint: str) -> str:
        kind = node.kind
        if kind is SchemaKind.REFERENCE:
            return self._reference_annotation(node.ref_name)
        if kind is SchemaKind.STRING:
            return _string_annotation(node)
        if kind is SchemaKind.NUMBER:
            return _number_annotation(node)
        if kind is SchemaKind.BOOLEAN:
            return "bool"
        if kind is SchemaKind.ENUM:
            return _literal(node.literal_values)
        if kind is SchemaKind.ARRAY:
            item_node = node.items if node.items is not None else SchemaNode(kind=SchemaKind.UNKNOWN)
            annotation = f"list[{self.annotation(item_node, hint=f'{hint}Item')}]"
            return _with_field(annotation, _array_field_keywords(node))
        if kind is SchemaKind.UNION:
            return self._union_annotation(node, hint=hint)
        if kind is SchemaKind.INTERSECTION:
            if self._linked.object_view(node) is not None:
                return self._nested_model(node, hint=hint)
            # Non-object intersections keep the first member's shape.
            return self.annotation(node.members[0], hint=hint)
        if kind is SchemaKind.OBJECT:
            if node.properties:
                return self._nested_model(node, hint=hint)
            if isinstance(node.additional_properties, SchemaNode):
                value = self.annotation(node.additional_properties, hint=f"{hint}Value")
                return f"dict[str, {value}]"
            return f"dict[str, {ANY_ANNOTATION}]"
        return ANY_ANNOTATION

    def _reference_annotation(self, ref_name: Optional[str]) -> str:
        symbol = self._symbols.get(ref_name) if ref_name is not None else None
        if symbol is None:
            return ANY_ANNOTATION
        external = ref_name != self._current
        if external and ref_name not in self._imports:
            self._imports.append(ref_name)
        if self._write_mode and symbol.write_class_name is not None:
            if external and ref_name not in self._write_imports:
                self._write_imports.append(ref_name)
            return symbol.write_class_name
        return symbol.class_name

    def _union_annotation(self, node: SchemaNode, *, hint: str) -> str:
        if all(member.kind is SchemaKind.ENUM for member in node.members):
            values: list[JSONValue] = []
            seen: list[tuple[type, JSONValue]] = []
            for member in node.members:
                for value in member.literal_values:
                    # ``False == 0`` and ``True == 1``; compare with the type.
                    if (type(value), value) not in seen:
                        seen.append((type(value), value))
                        values.append(value)
            return _literal(tuple(values))

        options: list[str] = []
        for index, member in enumerate(node.members):
            option = self.annotation(member, hint=f"{hint}Option{index + 1}")
            if option not in options:
                options.append(option)
        if ANY_ANNOTATION in options:
            return ANY_ANNOTATION
        if len(options) == 1:
            return options[0]
        return f"Union[{', '.join(options)}]"

    def _nested_model(self, node: SchemaNode, *, hint: str) -> str:
        # Subtrees without readonly fields share one class between read and write models.
        key = (id(node), self._write_mode and self._linked.node_has_readonly(node))
        existing = self._nested.get(key)
        if existing is not None:
            return existing
        model_name = unique_name(class_name(hint), self._used_names, separator="")
        self._used_names.add(model_name)
        self._nested[key] = model_name
        self._build_object_model(model_name, node, hint=hint)
        return model_name

    def _build_object_model(
        self,
        model_name: str,
        node: SchemaNode,
        *,
        hint: str,
        docstring: Optional[str] = None,
    ) -> None:
        properties, required = self._object_members(node)
        if self._write_mode:
            properties = {key: prop for key, prop in properties.items() if not prop.readonly}
        fields = self._fields(properties, required, hint=hint)

        additional_annotation = None
        if isinstance(node.additional_properties, SchemaNode) and not self._write_mode:
            value = self.annotation(node.additional_properties, hint=f"{hint}Additional")
            additional_annotation = f"dict[str, {value}]"

        if self._write_mode:
            extra_behavior = "ignore"
        else:
            extra_behavior = "forbid" if node.additional_properties is False else "allow"
        self._models.append(
            ModelDef(
                name=model_name,
                is_root=False,
                root_annotation=None,
                fields=fields,
                docstring=docstring if docstring is not None else node.description,
                title=None if self._write_mode else node.title,
                extra_behavior=extra_behavior,
                additional_properties_annotation=additional_annotation,
            )
        )

    def _build_write_model(self, model_name: str, node: SchemaNode, *, hint: str) -> None:
        """Build the write variant: readonly fields are dropped at every depth.

        References to schemas that have their own write variant point at it,
        and nested inline objects holding readonly fields get write classes.
        """
        self._write_mode = True
        try:
            self._build_object_model(
                model_name,
                node,
                hint=f"{hint}Write",
                docstring=f"Writable fields of {self._symbols[self._current].class_name}.",
            )
        finally:
            self._write_mode = False

    def _object_members(self, node: SchemaNode) -> tuple[dict[str, SchemaNode], frozenset[str]]:
        view = self._linked.object_view(node)
        if view is None:
            return dict(node.properties), node.required
        return view

    def _fields(
        self,
        properties: dict[str, SchemaNode],
        required: frozenset[str],
        *,
        hint: str,
    ) -> tuple[FieldDef, ...]:
        fields: list[FieldDef] = []
        used_field_names: set[str] = set()
        for source_name, prop in properties.items():
            field_name = field_identifier(source_name, used_field_names)
            used_field_names.add(field_name)

            is_required = source_name in required
            annotation = self.annotation(prop, hint=f"{hint}{class_name(source_name)}")
            if not is_required and annotation != ANY_ANNOTATION and not annotation.startswith(
                "Optional["
            ):
                annotation = f"Optional[{annotation}]"
            fields.append(
                FieldDef(
                    name=field_name,
                    source_name=source_name,
                    annotation=annotation,
                    required=is_required,
                    default=prop.default if prop.has_default and not is_required else None,
                    has_default=prop.has_default and not is_required,
                    description=prop.description,
                    readonly=prop.readonly,
                )
            )
        return tuple(fields)


def field_identifier(source_name: str, used_names: Iterable[str]) -> str:
    """Python attribute name for a source property."""
    candidate = snake_case(source_name)
    if (
        candidate in _BASEMODEL_RESERVED
        or candidate in _ROOTMODEL_RESERVED
        or candidate in _BUILTIN_IDENTIFIER_RESERVED
    ):
        candidate = f"{candidate}_field"
    return unique_name(candidate, used_names)


def parameter_annotation(schema: JSONObject) -> str:
    """Annotation for a path or query parameter; only primitives are typed."""
    schema_type = schema.get("type")
    if isinstance(schema_type, str) and schema_type in _PARAMETER_PRIMITIVES:
        return _PARAMETER_PRIMITIVES[schema_type]
    if schema_type == "array":
        items = schema.get("items")
        if isinstance(items, dict):
            return f"list[{parameter_annotation(items)}]"
        return f"list[{ANY_ANNOTATION}]"
    return ANY_ANNOTATION


def _string_annotation(node: SchemaNode) -> str:
    constraints = node.constraints
    keywords: dict[str, JSONValue] = {
        "pattern": constraints.pattern,
        "min_length": constraints.min_length,
        "max_length": constraints.max_length,
    }
    format_type = STRING_FORMAT_TYPES.get(constraints.format) if constraints.format else None
    if format_type is None:
        return _with_field("str", keywords)
    if format_type in _STR_FORMAT_TYPES or not any(value is not None for value in keywords.values()):
        return _with_field(format_type, keywords)
    # Length and pattern only apply to text; the format is kept as a JSON schema hint.
    return _with_field("str", {**keywords, "json_schema_extra": {"format": constraints.format}})


def _number_annotation(node: SchemaNode) -> str:
    constraints = node.constraints
    return _with_field(
        "int" if constraints.integer else "float",
        {
            "ge": constraints.minimum,
            "le": constraints.maximum,
            "gt": constraints.exclusive_minimum,
            "lt": constraints.exclusive_maximum,
            "multiple_of": constraints.multiple_of,
        },
    )


def _array_field_keywords(node: SchemaNode) -> dict[str, JSONValue]:
    return {
        "min_length": node.constraints.min_items,
        "max_length": node.constraints.max_items,
    }


def _with_field(annotation: str, keywords: dict[str, JSONValue]) -> str:
    present = {key: value for key, value in keywords.items() if value is not None}
    if not present:
        return annotation
    arguments = ", ".join(f"{key}={value!r}" for key, value in present.items())
    return f"Annotated[{annotation}, Field({arguments})]"


def _literal(values: tuple[JSONValue, ...]) -> str:
    return f"Literal[{', '.join(repr(value) for value in values)}]"
