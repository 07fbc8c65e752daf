"""Helpers for dynamically loading generated Python packages."""

from __future__ import annotations

import importlib
import importlib.util
import itertools
from pathlib import Path
import sys
from types import ModuleType

_COUNTER = itertools.count(1)


def load_package_from_path(*, package_name: str, package_dir: Path) -> ModuleType:
    """Import a generated package from disk under a fresh module name.

    The package is registered in ``sys.modules`` so its relative imports
    work; ``importlib.import_module(f"{module.__name__}.schemas")`` then
    loads subpackages.

    Args:
        package_name (str): Name of the generated package.
        package_dir (Path): Directory containing the package ``__init__.py``.

    Returns:
        ModuleType: Imported package module.
    """
    module_name = f"_generated_{package_name}_{next(_COUNTER)}"
    spec = importlib.util.spec_from_file_location(
        module_name,
        package_dir / "__init__.py",
        submodule_search_locations=[str(package_dir)],
    )
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Unable to import package from: {package_dir}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise
    return module


def load_submodule(package: ModuleType, name: str) -> ModuleType:
    """Import ``<package>.<name>`` for a package loaded by :func:`load_package_from_path`."""
    return importlib.import_module(f"{package.__name__}.{name}")


def unload_package(package: ModuleType) -> None:
    """Drop a loaded package and its submodules from ``sys.modules``."""
    prefix = f"{package.__name__}."
    for module_name in [name for name in sys.modules if name == package.__name__ or name.startswith(prefix)]:
        sys.modules.pop(module_name, None)
