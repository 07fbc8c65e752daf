"""AST-based Python code generation for schema and resource modules."""

from __future__ import annotations

import ast
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from .json_types import JSONValue
from .model_types import FieldDef, MethodSlot, ModelDef, ResourceGroup, SchemaModule, SchemaSymbol
from .naming import path_parameter_names, snake_case, unique_name
from .schema_models import ANY_ANNOTATION, parameter_annotation

_TYPING_IMPORT_ORDER: tuple[str, ...] = (
    "TYPE_CHECKING",
    "Annotated",
    "Any",
    "Literal",
    "Optional",
    "Union",
)

_PYDANTIC_IMPORT_ORDER: tuple[str, ...] = (
    "AnyUrl",
    "BaseModel",
    "ConfigDict",
    "EmailStr",
    "Field",
    "RootModel",
)

_STDLIB_IMPORTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("datetime", ("date", "datetime")),
    ("ipaddress", ("IPv4Address", "IPv6Address")),
    ("uuid", ("UUID",)),
)

_RESOURCE_RESERVED_NAMES = frozenset(
    {"NAME", "SCHEMA", "URI_TEMPLATE", "METHODS", "RESOURCE_READER", "call_api", "data", "item"}
)


def render_schema_module(module: SchemaModule, symbols: dict[str, SchemaSymbol]) -> str:
    """Render one schema module as Python source code using AST.

    Cross-module schema classes are imported under ``TYPE_CHECKING`` only;
    the ``schemas`` package rebuilds every model once all modules are
    imported.
    """
    body: list[ast.stmt] = []
    if module.description:
        body.append(ast.Expr(value=ast.Constant(value=module.description)))
    body.append(
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0)
    )

    used_names = _collect_used_annotation_names(module.models)
    if module.imported_schemas:
        used_names.add("TYPE_CHECKING")
    body.extend(_stdlib_imports(used_names))
    body.extend(_typing_imports(used_names))
    pydantic_imports = _collect_pydantic_imports(module.models, used_names)
    if pydantic_imports:
        body.append(_import_from("pydantic", pydantic_imports))

    if module.imported_schemas:
        type_checking_imports: list[ast.stmt] = [
            _import_from(symbols[name].module_name, _imported_class_names(module, symbols[name]), level=1)
            for name in sorted(module.imported_schemas, key=lambda item: symbols[item].module_name)
        ]
        body.append(
            ast.If(test=ast.Name(id="TYPE_CHECKING", ctx=ast.Load()), body=type_checking_imports, orelse=[])
        )

    for model in module.models:
        body.append(_model_to_ast(model))

    body.append(
        ast.TypeAlias(
            name=ast.Name(id=module.symbol.alias_name, ctx=ast.Store()),
            type_params=[],
            value=ast.Name(id=module.symbol.class_name, ctx=ast.Load()),
        )
    )
    return _unparse(body)


def _imported_class_names(module: SchemaModule, symbol: SchemaSymbol) -> list[str]:
    names = [symbol.class_name]
    if symbol.schema_name in module.imported_write_schemas and symbol.write_class_name is not None:
        names.append(symbol.write_class_name)
    return names


def render_schemas_init_module(modules: Sequence[SchemaModule], title: str) -> str:
    """Render ``schemas/__init__.py``.

    Imports every generated class and rebuilds each model against the
    complete namespace, which resolves forward and cyclic references.
    """
    body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value=f"Schemas generated from {title}.")),
    ]
    class_names: list[str] = []
    for module in modules:
        names = [model.name for model in module.models]
        class_names.extend(names)
        body.append(_import_from(module.symbol.module_name, names, level=1))

    body.append(
        ast.Assign(
            targets=[ast.Name(id="SCHEMAS", ctx=ast.Store())],
            value=ast.Dict(
                keys=[ast.Constant(value=module.symbol.schema_name) for module in modules],
                values=[ast.Name(id=module.symbol.class_name, ctx=ast.Load()) for module in modules],
            ),
        )
    )
    body.append(
        ast.Assign(
            targets=[ast.Name(id="__all__", ctx=ast.Store())],
            value=ast.List(
                elts=[ast.Constant(value=name) for name in ["SCHEMAS", *class_names]],
                ctx=ast.Load(),
            ),
        )
    )
    if class_names:
        body.append(
            ast.For(
                target=ast.Name(id="_model", ctx=ast.Store()),
                iter=ast.Tuple(
                    elts=[ast.Name(id=name, ctx=ast.Load()) for name in class_names],
                    ctx=ast.Load(),
                ),
                body=[
                    ast.Expr(
                        value=ast.Call(
                            func=ast.Attribute(
                                value=ast.Name(id="_model", ctx=ast.Load()),
                                attr="model_rebuild",
                                ctx=ast.Load(),
                            ),
                            args=[],
                            keywords=[
                                ast.keyword(
                                    arg="_types_namespace",
                                    value=ast.Call(
                                        func=ast.Name(id="globals", ctx=ast.Load()),
                                        args=[],
                                        keywords=[],
                                    ),
                                )
                            ],
                        )
                    )
                ],
                orelse=[],
            )
        )
    return _unparse(body)


@dataclass(frozen=True)
class _HandlerParam:
    name: str
    source_name: str
    location: str
    annotation: str
    required: bool


def render_resource_module(resource: ResourceGroup, symbols: dict[str, SchemaSymbol]) -> str:
    """Render one resource module with its handlers and method table."""
    paths = ", ".join(resource.paths)
    body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value=f"Resource {resource.name!r} ({paths}).")),
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0),
    ]

    used_names: set[str] = set(_RESOURCE_RESERVED_NAMES)
    handler_names: dict[str, str] = {}
    handlers: list[ast.AsyncFunctionDef] = []
    for slot_name, method_slot in resource.slots.items():
        base = snake_case(slot_name) if method_slot.custom else f"{slot_name}_{resource.name}"
        handler_name = unique_name(base, used_names)
        used_names.add(handler_name)
        handler_names[slot_name] = handler_name
        handlers.append(_handler_to_ast(handler_name, method_slot, symbols))

    schema_imports = _resource_schema_imports(resource, symbols)
    annotation_names: set[str] = set()
    for handler in handlers:
        annotation_names.update(_loaded_names(handler.args))
        if handler.returns is not None:
            annotation_names.update(_loaded_names(handler.returns))
    body.extend(_typing_imports(annotation_names))
    body.append(_import_from("client", ["call_api"], level=2))
    if schema_imports:
        body.append(_import_from("schemas", schema_imports, level=2))

    primary = symbols.get(resource.primary_schema_name) if resource.primary_schema_name else None
    body.append(_assign("NAME", ast.Constant(value=resource.name)))
    body.append(
        _assign(
            "SCHEMA",
            ast.Name(id=primary.class_name, ctx=ast.Load())
            if primary is not None
            else ast.Constant(value=None),
        )
    )
    body.append(_assign("URI_TEMPLATE", ast.Constant(value=resource.uri_template)))
    body.extend(handlers)

    body.append(
        _assign(
            "METHODS",
            ast.Dict(
                keys=[ast.Constant(value=slot_name) for slot_name in resource.slots],
                values=[
                    _method_entry(method_slot, handler_names[slot_name], symbols)
                    for slot_name, method_slot in resource.slots.items()
                ],
            ),
        )
    )

    reader: ast.expr = ast.Constant(value=None)
    get_slot = resource.slots.get("get")
    if get_slot is not None and _can_read_from_uri(get_slot):
        reader = ast.Name(id=handler_names["get"], ctx=ast.Load())
    body.append(_assign("RESOURCE_READER", reader))
    return _unparse(body)


def render_resources_init_module(resources: Sequence[ResourceGroup]) -> str:
    """Render ``resources/__init__.py`` collecting every resource module."""
    body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value="Resource modules exposed by the server.")),
    ]
    names = sorted(resource.name for resource in resources)
    if names:
        body.append(ast.ImportFrom(module=None, names=[ast.alias(name=name) for name in names], level=1))
    body.append(
        _assign(
            "RESOURCES",
            ast.Tuple(
                elts=[ast.Name(id=resource.name, ctx=ast.Load()) for resource in resources],
                ctx=ast.Load(),
            ),
        )
    )
    return _unparse(body)


def render_package_init_module(title: str, version: str) -> str:
    """Render the generated package ``__init__.py``."""
    body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value=f"MCP server for {title}.")),
        _assign("__version__", ast.Constant(value=version)),
    ]
    return _unparse(body)


def with_warning_comments(source: str, warnings: Iterable[str]) -> str:
    """Prefix rendered source with one ``# Warning:`` comment per warning."""
    lines = [f"# Warning: {' '.join(warning.split())}" for warning in warnings]
    if not lines:
        return source
    return "\n".join(lines) + "\n" + source


def _handler_params(method_slot: MethodSlot) -> list[_HandlerParam]:
    operation = method_slot.operation
    declared = {(param.location, param.name): param for param in operation.parameters}
    params: list[_HandlerParam] = []
    used: set[str] = set(_RESOURCE_RESERVED_NAMES) | {"body"}

    for source_name in path_parameter_names(operation.path):
        record = declared.get(("path", source_name))
        name = unique_name(snake_case(source_name), used)
        used.add(name)
        params.append(
            _HandlerParam(
                name=name,
                source_name=source_name,
                location="path",
                annotation=parameter_annotation(record.schema) if record is not None else "str",
                required=True,
            )
        )

    for record in operation.parameters:
        if record.location != "query":
            continue
        name = unique_name(snake_case(record.name), used)
        used.add(name)
        params.append(
            _HandlerParam(
                name=name,
                source_name=record.name,
                location="query",
                annotation=parameter_annotation(record.schema),
                required=record.required,
            )
        )
    return params


def _body_annotation(method_slot: MethodSlot, symbols: dict[str, SchemaSymbol]) -> str:
    symbol = symbols.get(method_slot.schema_name) if method_slot.schema_name else None
    if symbol is None:
        return f"dict[str, {ANY_ANNOTATION}]"
    annotation = symbol.write_class_name or symbol.class_name
    return f"list[{annotation}]" if method_slot.is_array else annotation


def _handler_to_ast(
    handler_name: str,
    method_slot: MethodSlot,
    symbols: dict[str, SchemaSymbol],
) -> ast.AsyncFunctionDef:
    operation = method_slot.operation
    params = _handler_params(method_slot)
    required_params = [param for param in params if param.required]
    optional_params = [param for param in params if not param.required]

    positional: list[ast.arg] = [
        ast.arg(arg=param.name, annotation=_expr(param.annotation)) for param in required_params
    ]
    defaults: list[ast.expr] = []
    body_arg: Optional[ast.arg] = None
    if method_slot.writes:
        body_arg = ast.arg(arg="body", annotation=_expr(_body_annotation(method_slot, symbols)))
        if operation.request_required:
            positional.append(body_arg)
    if body_arg is not None and not operation.request_required:
        body_arg.annotation = _expr(f"Optional[{ast.unparse(body_arg.annotation)}]")
        positional.append(body_arg)
        defaults.append(ast.Constant(value=None))
    for param in optional_params:
        positional.append(ast.arg(arg=param.name, annotation=_expr(f"Optional[{param.annotation}]")))
        defaults.append(ast.Constant(value=None))

    call_keywords: list[ast.keyword] = []
    path_params = [param for param in params if param.location == "path"]
    query_params = [param for param in params if param.location == "query"]
    if path_params:
        call_keywords.append(ast.keyword(arg="path_params", value=_param_dict(path_params)))
    if query_params:
        call_keywords.append(ast.keyword(arg="query_params", value=_param_dict(query_params)))
    if method_slot.writes:
        call_keywords.append(ast.keyword(arg="json_body", value=ast.Name(id="body", ctx=ast.Load())))

    call = ast.Await(
        value=ast.Call(
            func=ast.Name(id="call_api", ctx=ast.Load()),
            args=[ast.Constant(value=operation.method.upper()), ast.Constant(value=operation.path)],
            keywords=call_keywords,
        )
    )
    statements: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value=_description(method_slot))),
        ast.Assign(targets=[ast.Name(id="data", ctx=ast.Store())], value=call),
    ]

    response = symbols.get(method_slot.response_schema_name) if method_slot.response_schema_name else None
    if response is None:
        returns = _expr(ANY_ANNOTATION)
        statements.append(ast.Return(value=ast.Name(id="data", ctx=ast.Load())))
    elif method_slot.response_is_array:
        returns = _expr(f"list[{response.class_name}]")
        statements.append(
            ast.Return(
                value=ast.ListComp(
                    elt=_model_validate(response.class_name, "item"),
                    generators=[
                        ast.comprehension(
                            target=ast.Name(id="item", ctx=ast.Store()),
                            iter=ast.Name(id="data", ctx=ast.Load()),
                            ifs=[],
                            is_async=0,
                        )
                    ],
                )
            )
        )
    else:
        returns = _expr(response.class_name)
        statements.append(ast.Return(value=_model_validate(response.class_name, "data")))

    return ast.AsyncFunctionDef(
        name=handler_name,
        args=ast.arguments(
            posonlyargs=[],
            args=positional,
            vararg=None,
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=defaults,
        ),
        body=statements,
        decorator_list=[],
        returns=returns,
        type_params=[],
    )


def _can_read_from_uri(method_slot: MethodSlot) -> bool:
    """A ``get`` handler can back a resource template when only path params are required."""
    if method_slot.writes:
        return False
    for param in _handler_params(method_slot):
        if param.location == "path" and param.name != snake_case(param.source_name):
            return False
        if param.required and param.location != "path":
            return False
    return True


def _method_entry(
    method_slot: MethodSlot,
    handler_name: str,
    symbols: dict[str, SchemaSymbol],
) -> ast.Dict:
    symbol = symbols.get(method_slot.schema_name) if method_slot.schema_name else None
    schema_value: ast.expr = ast.Constant(value=None)
    if symbol is not None:
        schema_class = symbol.write_class_name if method_slot.writes and symbol.write_class_name else symbol.class_name
        schema_value = ast.Name(id=schema_class, ctx=ast.Load())
    entries: list[tuple[str, ast.expr]] = [
        ("description", ast.Constant(value=_description(method_slot))),
        ("handler", ast.Name(id=handler_name, ctx=ast.Load())),
        ("http_method", ast.Constant(value=method_slot.operation.method.upper())),
        ("path", ast.Constant(value=method_slot.operation.path)),
        ("schema", schema_value),
    ]
    return ast.Dict(
        keys=[ast.Constant(value=key) for key, _value in entries],
        values=[value for _key, value in entries],
    )


def _resource_schema_imports(resource: ResourceGroup, symbols: dict[str, SchemaSymbol]) -> list[str]:
    names: list[str] = []

    def add(name: Optional[str]) -> None:
        if name is not None and name not in names:
            names.append(name)

    primary = symbols.get(resource.primary_schema_name) if resource.primary_schema_name else None
    if primary is not None:
        add(primary.class_name)
    for method_slot in resource.slots.values():
        symbol = symbols.get(method_slot.schema_name) if method_slot.schema_name else None
        if symbol is not None:
            add(symbol.write_class_name if method_slot.writes and symbol.write_class_name else symbol.class_name)
        response = (
            symbols.get(method_slot.response_schema_name) if method_slot.response_schema_name else None
        )
        if response is not None:
            add(response.class_name)
    return sorted(names)


def _description(method_slot: MethodSlot) -> str:
    operation = method_slot.operation
    text = operation.summary or operation.description or operation.label
    return " ".join(text.split())


def _param_dict(params: list[_HandlerParam]) -> ast.Dict:
    return ast.Dict(
        keys=[ast.Constant(value=param.source_name) for param in params],
        values=[ast.Name(id=param.name, ctx=ast.Load()) for param in params],
    )


def _model_validate(class_name: str, argument: str) -> ast.Call:
    return ast.Call(
        func=ast.Attribute(
            value=ast.Name(id=class_name, ctx=ast.Load()),
            attr="model_validate",
            ctx=ast.Load(),
        ),
        args=[ast.Name(id=argument, ctx=ast.Load())],
        keywords=[],
    )


def _model_to_ast(model: ModelDef) -> ast.ClassDef:
    bases: list[ast.expr]
    if model.is_root:
        if model.root_annotation is None:
            raise ValueError(f"Root model {model.name} missing annotation")
        bases = [
            ast.Subscript(
                value=ast.Name(id="RootModel", ctx=ast.Load()),
                slice=_expr(model.root_annotation),
                ctx=ast.Load(),
            )
        ]
    else:
        bases = [ast.Name(id="BaseModel", ctx=ast.Load())]

    class_body: list[ast.stmt] = []
    if model.docstring:
        class_body.append(ast.Expr(value=ast.Constant(value=model.docstring)))

    config_keywords = _config_keywords(model)
    if config_keywords:
        class_body.append(
            ast.Assign(
                targets=[ast.Name(id="model_config", ctx=ast.Store())],
                value=ast.Call(
                    func=ast.Name(id="ConfigDict", ctx=ast.Load()),
                    args=[],
                    keywords=config_keywords,
                ),
            )
        )

    if not model.is_root:
        if model.additional_properties_annotation:
            class_body.append(
                ast.AnnAssign(
                    target=ast.Name(id="__pydantic_extra__", ctx=ast.Store()),
                    annotation=_expr(model.additional_properties_annotation),
                    value=ast.Call(
                        func=ast.Name(id="Field", ctx=ast.Load()),
                        args=[],
                        keywords=[ast.keyword(arg="init", value=ast.Constant(value=False))],
                    ),
                    simple=1,
                )
            )
        for field in model.fields:
            class_body.append(_field_to_ast(field))

    if not class_body:
        class_body.append(ast.Pass())

    return ast.ClassDef(
        name=model.name,
        bases=bases,
        keywords=[],
        body=class_body,
        decorator_list=[],
        type_params=[],
    )


def _config_keywords(model: ModelDef) -> list[ast.keyword]:
    keywords: list[ast.keyword] = []
    if model.title:
        keywords.append(ast.keyword(arg="title", value=ast.Constant(value=model.title)))
    if model.extra_behavior:
        keywords.append(ast.keyword(arg="extra", value=ast.Constant(value=model.extra_behavior)))
    if any(field.name != field.source_name for field in model.fields):
        keywords.append(ast.keyword(arg="populate_by_name", value=ast.Constant(value=True)))
    return keywords


def _field_to_ast(field: FieldDef) -> ast.AnnAssign:
    keywords: list[ast.keyword] = []
    if field.source_name != field.name:
        keywords.append(ast.keyword(arg="alias", value=ast.Constant(value=field.source_name)))
    if field.description:
        keywords.append(ast.keyword(arg="description", value=ast.Constant(value=field.description)))
    if field.readonly:
        keywords.append(
            ast.keyword(arg="json_schema_extra", value=_value_expr({"readOnly": True}))
        )

    if field.required:
        default_value: ast.expr = ast.Constant(value=Ellipsis)
    elif field.has_default:
        default_value = _value_expr(field.default)
    else:
        default_value = ast.Constant(value=None)

    call = ast.Call(
        func=ast.Name(id="Field", ctx=ast.Load()),
        args=[default_value],
        keywords=keywords,
    )

    return ast.AnnAssign(
        target=ast.Name(id=field.name, ctx=ast.Store()),
        annotation=_expr(field.annotation),
        value=call,
        simple=1,
    )


def _assign(name: str, value: ast.expr) -> ast.Assign:
    return ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=value)


def _import_from(module: str, names: Iterable[str], *, level: int = 0) -> ast.ImportFrom:
    return ast.ImportFrom(module=module, names=[ast.alias(name=name) for name in names], level=level)


def _unparse(body: list[ast.stmt]) -> str:
    module = ast.Module(body=body, type_ignores=[])
    ast.fix_missing_locations(module)
    return ast.unparse(module) + "\n"


def _expr(code: str) -> ast.expr:
    parsed = ast.parse(code, mode="eval")
    return parsed.body


def _value_expr(value: JSONValue) -> ast.expr:
    parsed = ast.parse(repr(value), mode="eval")
    return parsed.body


def _typing_imports(used_names: set[str]) -> list[ast.stmt]:
    names = [name for name in _TYPING_IMPORT_ORDER if name in used_names]
    return [_import_from("typing", names)] if names else []


def _stdlib_imports(used_names: set[str]) -> list[ast.stmt]:
    imports: list[ast.stmt] = []
    for module_name, candidates in _STDLIB_IMPORTS:
        names = [name for name in candidates if name in used_names]
        if names:
            imports.append(_import_from(module_name, names))
    return imports


def _collect_used_annotation_names(models: Iterable[ModelDef]) -> set[str]:
    names: set[str] = set()
    for annotation in _iter_annotation_exprs(models):
        names.update(_loaded_names(_expr(annotation)))
    return names


def _iter_annotation_exprs(models: Iterable[ModelDef]) -> Iterable[str]:
    for model in models:
        if model.root_annotation is not None:
            yield model.root_annotation
        if model.additional_properties_annotation is not None:
            yield model.additional_properties_annotation
        for field in model.fields:
            yield field.annotation


def _loaded_names(node: ast.AST) -> set[str]:
    return {
        child.id
        for child in ast.walk(node)
        if isinstance(child, ast.Name) and isinstance(child.ctx, ast.Load)
    }


def _collect_pydantic_imports(models: Sequence[ModelDef], used_annotation_names: set[str]) -> list[str]:
    requested = {name for name in ("AnyUrl", "EmailStr") if name in used_annotation_names}
    if any(not model.is_root for model in models):
        requested.add("BaseModel")
    if any(model.is_root for model in models):
        requested.add("RootModel")
    if "Field" in used_annotation_names or any(
        model.fields or model.additional_properties_annotation for model in models
    ):
        requested.add("Field")
    if any(_config_keywords(model) for model in models):
        requested.add("ConfigDict")
    return [name for name in _PYDANTIC_IMPORT_ORDER if name in requested]
