"""Tests for generated schema and resource modules."""

from __future__ import annotations

import ast
import asyncio
import inspect
import json
from collections.abc import Iterator
from pathlib import Path
from types import ModuleType
from typing import Any

import httpx
import pytest
from pydantic import BaseModel, RootModel, ValidationError

from openapi_to_mcp_generator.codegen_ast import with_warning_comments
from openapi_to_mcp_generator.compiler import GeneratedProject, build_artifacts
from openapi_to_mcp_generator.module_loading import (
    load_package_from_path,
    load_submodule,
    unload_package,
)
from openapi_to_mcp_generator.writer import write_artifacts
from .fixture_helpers import load_fixture, parametrize_fixtures

_USER_PAYLOAD = {"id": "u1", "name": "Ada", "email": "ada@example.com", "createdAt": None}


def _generate(fixture: str, server_name: str, output_dir: Path) -> GeneratedProject:
    project = build_artifacts(load_fixture(fixture), server_name)
    write_artifacts(output_dir, project.artifacts)
    return project


def _load(project: GeneratedProject, output_dir: Path) -> ModuleType:
    return load_package_from_path(
        package_name=project.package_name,
        package_dir=output_dir / project.package_name,
    )


@pytest.fixture(scope="module")
def store_output(tmp_path_factory: pytest.TempPathFactory) -> tuple[GeneratedProject, Path]:
    output_dir = tmp_path_factory.mktemp("store")
    return _generate("store.yaml", "store-mcp", output_dir), output_dir


@pytest.fixture()
def store_package(store_output: tuple[GeneratedProject, Path]) -> Iterator[ModuleType]:
    project, output_dir = store_output
    package = _load(project, output_dir)
    yield package
    unload_package(package)


@pytest.fixture()
def library_package(tmp_path: Path) -> Iterator[ModuleType]:
    project = _generate("library.yaml", "Library MCP", tmp_path)
    package = _load(project, tmp_path)
    yield package
    unload_package(package)


@pytest.fixture()
def accounts_output(tmp_path: Path) -> Iterator[tuple[GeneratedProject, ModuleType]]:
    project = _generate("accounts.yaml", "accounts", tmp_path)
    package = _load(project, tmp_path)
    yield project, package
    unload_package(package)


@parametrize_fixtures()
def test_generated_python_files_parse(fixture_path: Path) -> None:
    """Every emitted Python file should be syntactically valid."""
    project = build_artifacts(load_fixture(fixture_path.name), "fixture server")
    python_files = [path for path in project.artifacts if path.endswith(".py")]
    assert python_files
    for path in python_files:
        ast.parse(project.artifacts[path], filename=path)


def test_store_artifact_layout(store_output: tuple[GeneratedProject, Path]) -> None:
    project, _output_dir = store_output

    assert project.package_name == "store_mcp"
    assert list(project.artifacts)[:6] == [
        "pyproject.toml",
        "README.md",
        "store_mcp/__init__.py",
        "store_mcp/client.py",
        "store_mcp/server.py",
        "store_mcp/schemas/__init__.py",
    ]
    assert "store_mcp/schemas/order_item.py" in project.artifacts
    assert "store_mcp/schemas/orphan.py" not in project.artifacts
    assert "store_mcp/resources/users_orders.py" in project.artifacts
    assert 'store-mcp = "store_mcp.server:main"' in project.artifacts["pyproject.toml"]
    assert '"https://eu.store.example.com/v1"' in project.artifacts["store_mcp/client.py"]


def test_cross_module_references_are_type_checking_imports(
    store_output: tuple[GeneratedProject, Path],
) -> None:
    project, _output_dir = store_output
    widget_source = project.artifacts["store_mcp/schemas/widget.py"]

    assert "if TYPE_CHECKING:" in widget_source
    assert "from .gadget import GadgetSchema" in widget_source
    assert "type Widget = WidgetSchema" in widget_source


def test_user_schema_matches_source(store_package: ModuleType) -> None:
    schemas = load_submodule(store_package, "schemas")
    user_schema = schemas.UserSchema.model_json_schema(by_alias=True)

    assert list(user_schema["properties"]) == [
        "id",
        "name",
        "email",
        "role",
        "createdAt",
        "address",
        "tags",
    ]
    assert sorted(user_schema["required"]) == ["email", "id", "name"]
    assert user_schema["properties"]["id"]["readOnly"] is True
    assert user_schema["description"] == "A registered user."
    assert schemas.SCHEMAS["User"] is schemas.UserSchema


def test_write_schema_omits_readonly_fields(store_package: ModuleType) -> None:
    schemas = load_submodule(store_package, "schemas")
    write_schema = schemas.UserWriteSchema.model_json_schema(by_alias=True)

    assert "id" not in write_schema["properties"]
    assert "createdAt" not in write_schema["properties"]
    assert sorted(write_schema["required"]) == ["email", "name"]

    body = schemas.UserWriteSchema.model_validate(_USER_PAYLOAD)
    assert body.model_dump(by_alias=True, exclude_none=True) == {
        "name": "Ada",
        "email": "ada@example.com",
    }
    assert not hasattr(schemas, "CategoryWriteSchema")


def test_constraints_defaults_and_aliases(store_package: ModuleType) -> None:
    schemas = load_submodule(store_package, "schemas")

    order = schemas.OrderSchema.model_validate(
        {"userId": "u1", "items": [{"sku": "A-1", "quantity": 2}]}
    )
    assert order.user_id == "u1"
    assert order.status == "pending"
    assert isinstance(order.items[0], schemas.OrderItemSchema)

    with pytest.raises(ValidationError):
        schemas.OrderSchema.model_validate({"userId": "u1", "items": []})
    with pytest.raises(ValidationError):
        schemas.OrderItemSchema.model_validate({"sku": "A-1", "quantity": 0})
    with pytest.raises(ValidationError):
        schemas.UserSchema.model_validate({**_USER_PAYLOAD, "role": "owner"})
    with pytest.raises(ValidationError):
        schemas.UserSchema.model_validate({**_USER_PAYLOAD, "name": ""})


def test_recursive_and_cyclic_schemas(store_package: ModuleType) -> None:
    schemas = load_submodule(store_package, "schemas")

    category = schemas.CategorySchema.model_validate(
        {"name": "root", "children": [{"name": "leaf", "children": []}]}
    )
    assert isinstance(category.children[0], schemas.CategorySchema)

    employee = schemas.EmployeeSchema.model_validate(
        {"name": "Ada", "manager": {"name": "Grace", "reports": [{"name": "Linus"}]}}
    )
    assert isinstance(employee.manager, schemas.ManagerSchema)
    assert isinstance(employee.manager.reports[0], schemas.EmployeeSchema)

    widget = schemas.WidgetSchema.model_validate({"label": "w", "details": {"part": {"serial": "7"}}})
    assert isinstance(widget.details, (schemas.GadgetSchema, schemas.GizmoSchema))


def test_resource_module_constants(store_package: ModuleType) -> None:
    users = load_submodule(store_package, "resources.users")
    schemas = load_submodule(store_package, "schemas")

    assert users.NAME == "users"
    assert users.URI_TEMPLATE == "users/{id}"
    assert users.SCHEMA is schemas.UserSchema
    assert list(users.METHODS) == ["get", "list", "create", "update", "delete", "rename_user"]
    assert users.METHODS["create"]["schema"] is schemas.UserWriteSchema
    assert users.METHODS["create"]["http_method"] == "POST"
    assert users.METHODS["delete"]["schema"] is None
    assert users.METHODS["rename_user"]["handler"] is users.rename_user
    assert users.RESOURCE_READER is users.get_users

    resources = load_submodule(store_package, "resources")
    assert [module.NAME for module in resources.RESOURCES] == [
        "users",
        "users_orders",
        "widgets",
        "categories",
        "employees",
    ]


def test_handler_signatures(store_package: ModuleType) -> None:
    users = load_submodule(store_package, "resources.users")
    employees = load_submodule(store_package, "resources.employees")

    assert list(inspect.signature(users.create_users).parameters) == ["body"]
    assert list(inspect.signature(users.update_users).parameters) == ["id", "body"]
    list_params = inspect.signature(users.list_users).parameters
    assert list(list_params) == ["limit"]
    assert list_params["limit"].default is None
    assert list(inspect.signature(employees.get_employees).parameters) == ["employee_id"]
    assert employees.URI_TEMPLATE == "employees/{employee_id}"
    assert employees.RESOURCE_READER is employees.get_employees


def test_handlers_call_api_and_validate_responses(
    store_package: ModuleType,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    users = load_submodule(store_package, "resources.users")
    schemas = load_submodule(store_package, "schemas")
    calls: list[tuple[str, str, dict[str, Any]]] = []

    async def fake_call_api(method: str, path: str, **kwargs: Any) -> Any:
        calls.append((method, path, kwargs))
        if method == "DELETE":
            return None
        if path == "/users" and method == "GET":
            return [_USER_PAYLOAD]
        return _USER_PAYLOAD

    monkeypatch.setattr(users, "call_api", fake_call_api)

    user = asyncio.run(users.get_users("u1"))
    assert isinstance(user, schemas.UserSchema)
    assert user.created_at is None

    listed = asyncio.run(users.list_users(limit=5))
    assert [item.name for item in listed] == ["Ada"]

    body = schemas.UserWriteSchema(name="Ada", email="ada@example.com")
    asyncio.run(users.create_users(body))
    assert asyncio.run(users.delete_users("u1")) is None

    assert calls == [
        ("GET", "/users/{id}", {"path_params": {"id": "u1"}}),
        ("GET", "/users", {"query_params": {"limit": 5}}),
        ("POST", "/users", {"json_body": body}),
        ("DELETE", "/users/{id}", {"path_params": {"id": "u1"}}),
    ]


def test_client_sends_requests_through_httpx(
    store_output: tuple[GeneratedProject, Path],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("API_TOKEN", "secret")
    monkeypatch.setenv("API_BASE_URL", "https://api.test/v1/")
    project, output_dir = store_output
    package = _load(project, output_dir)
    try:
        client = load_submodule(package, "client")
        schemas = load_submodule(package, "schemas")
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/missing"):
                return httpx.Response(404, json={"message": "no such user"})
            return httpx.Response(200, json={"ok": True})

        real_async_client = httpx.AsyncClient

        def mock_async_client(**kwargs: Any) -> httpx.AsyncClient:
            return real_async_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(client.httpx, "AsyncClient", mock_async_client)

        body = schemas.UserWriteSchema(name="Ada", email="ada@example.com")
        result = asyncio.run(
            client.call_api(
                "PUT",
                "/users/{id}",
                path_params={"id": "a/b"},
                query_params={"limit": 5, "cursor": None},
                json_body=body,
            )
        )
        assert result == {"ok": True}
        request = seen[0]
        assert request.method == "PUT"
        assert request.url.raw_path == b"/v1/users/a%2Fb?limit=5"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"name": "Ada", "email": "ada@example.com"}

        with pytest.raises(client.ApiError) as excinfo:
            asyncio.run(client.call_api("GET", "/users/missing"))
        assert excinfo.value.status_code == 404
        assert excinfo.value.to_dict()["message"] == "no such user"
    finally:
        unload_package(package)


def test_query_parameters_keep_source_names(
    library_package: ModuleType,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    books = load_submodule(library_package, "resources.books")
    calls: list[dict[str, Any]] = []

    async def fake_call_api(method: str, path: str, **kwargs: Any) -> Any:
        calls.append(kwargs)
        return {"items": [], "next": None}

    monkeypatch.setattr(books, "call_api", fake_call_api)
    page = asyncio.run(books.list_books("dune", page_size=10))

    assert page.items == []
    assert calls == [{"query_params": {"q": "dune", "page-size": 10}}]
    assert list(inspect.signature(books.list_books).parameters) == ["q", "page_size"]
    assert books.RESOURCE_READER is books.get_books


def test_intersection_schema_is_flattened(library_package: ModuleType) -> None:
    schemas = load_submodule(library_package, "schemas")
    book_schema = schemas.BookSchema.model_json_schema(by_alias=True)

    assert sorted(book_schema["properties"]) == ["format", "id", "metadata", "title", "updated_at"]
    assert sorted(book_schema["required"]) == ["id", "title"]
    book = schemas.BookSchema.model_validate(
        {
            "id": "0d7f1c1e-8f1e-4b7e-9a53-6f0f5c4e1b2a",
            "title": "Dune",
            "metadata": {"lang": "en"},
        }
    )
    assert book.metadata == {"lang": "en"}
    assert "id" not in schemas.BookWriteSchema.model_json_schema()["properties"]

    loans = load_submodule(library_package, "resources.books_loans")
    assert loans.SCHEMA is schemas.LoanSchema
    assert loans.RESOURCE_READER is None
    assert loans.METHODS["create"]["schema"] is schemas.LoanRequestSchema


def test_unknown_schema_becomes_any_root_model(tmp_path: Path) -> None:
    project = _generate("degraded.yaml", "degraded", tmp_path)
    thing_source = project.artifacts["degraded/schemas/thing.py"]

    assert thing_source.startswith("# Warning: Unsupported schema shape at Thing")
    package = _load(project, tmp_path)
    try:
        schemas = load_submodule(package, "schemas")
        assert issubclass(schemas.ThingSchema, RootModel)
        assert schemas.ThingSchema.model_validate({"anything": [1, 2]}).root == {"anything": [1, 2]}
        assert issubclass(schemas.ItemSchema, BaseModel)
    finally:
        unload_package(package)


def test_generated_server_registers_tools(store_package: ModuleType) -> None:
    fastmcp = pytest.importorskip("fastmcp")
    server = load_submodule(store_package, "server")

    mcp = server.create_server()

    assert isinstance(mcp, fastmcp.FastMCP)
    tools = asyncio.run(mcp.get_tools())
    assert {"users_get", "users_list", "users_rename_user", "employees_get"} <= set(tools)


def test_with_warning_comments() -> None:
    source = "x = 1\n"

    assert with_warning_comments(source, []) == source
    assert with_warning_comments(source, ["first\nline", "second"]) == (
        "# Warning: first line\n# Warning: second\nx = 1\n"
    )


_ACCOUNT_PAYLOAD = {
    "name": "ace",
    "profile": {"nickname": "Ace", "verifiedAt": "2024-05-01T12:00:00Z"},
    "sessions": [{"token": "t-1", "device": "phone"}],
}


def test_write_schema_drops_nested_readonly_fields(
    accounts_output: tuple[GeneratedProject, ModuleType],
) -> None:
    project, package = accounts_output
    schemas = load_submodule(package, "schemas")

    assert project.symbols["Account"].write_class_name == "AccountWriteSchema"
    body = schemas.AccountWriteSchema.model_validate(_ACCOUNT_PAYLOAD)
    assert body.model_dump(by_alias=True, exclude_none=True) == {
        "name": "ace",
        "profile": {"nickname": "Ace"},
        "sessions": [{"device": "phone"}],
    }

    account = schemas.AccountSchema.model_validate(_ACCOUNT_PAYLOAD)
    assert account.profile.verified_at is not None
    assert account.sessions[0].token == "t-1"

    accounts = load_submodule(package, "resources.accounts")
    assert accounts.METHODS["create"]["schema"] is schemas.AccountWriteSchema


def test_write_schema_references_write_variants(
    accounts_output: tuple[GeneratedProject, ModuleType],
) -> None:
    project, _package = accounts_output
    source = project.artifacts["accounts/schemas/account.py"]

    assert "from .session import SessionSchema, SessionWriteSchema" in source
    assert "list[SessionWriteSchema]" in source
    assert "list[SessionSchema]" in source


def test_mixed_literal_values_are_not_merged(
    accounts_output: tuple[GeneratedProject, ModuleType],
) -> None:
    project, package = accounts_output
    schemas = load_submodule(package, "schemas")

    assert "Literal[0, False, 1, True]" in project.artifacts["accounts/schemas/account.py"]
    assert schemas.AccountSchema.model_validate({**_ACCOUNT_PAYLOAD, "flags": False}).flags is False


def test_format_strings_keep_their_constraints(
    accounts_output: tuple[GeneratedProject, ModuleType],
) -> None:
    project, package = accounts_output
    schemas = load_submodule(package, "schemas")
    source = project.artifacts["accounts/schemas/account.py"]

    assert "Annotated[EmailStr, Field(max_length=40)]" in source
    assert "json_schema_extra={'format': 'uri'}" in source
    with pytest.raises(ValidationError):
        schemas.AccountSchema.model_validate({**_ACCOUNT_PAYLOAD, "contact": f"{'a' * 40}@example.com"})
    with pytest.raises(ValidationError):
        schemas.AccountSchema.model_validate({**_ACCOUNT_PAYLOAD, "homepage": "http://example.com"})
    homepage = schemas.AccountSchema.model_json_schema(by_alias=True)["properties"]["homepage"]
    assert homepage["anyOf"][0]["pattern"] == "^https://"


def test_literal_root_path_becomes_a_resource(
    accounts_output: tuple[GeneratedProject, ModuleType],
) -> None:
    project, package = accounts_output

    assert [resource.name for resource in project.resources] == ["accounts", "root"]
    assert project.warnings == ()
    root = load_submodule(package, "resources.root")
    assert root.NAME == "root"
    assert root.RESOURCE_READER is root.get_root
