"""OpenAPI to MCP server generator package."""

from __future__ import annotations

from .cli import main
from .compiler import build_artifacts, compile_spec
from .model_types import CompileOptions, CompileResult

__all__ = ["CompileOptions", "CompileResult", "build_artifacts", "compile_spec", "main"]
