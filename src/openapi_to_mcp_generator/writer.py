"""Filesystem writers for generated MCP projects."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
import subprocess
import sys

logger = logging.getLogger(__name__)

_GENERATED_RUFF_IGNORE_CODES: tuple[str, ...] = (
    "D100",
    "D101",
    "D102",
    "D103",
    "D104",
    "D205",
    "D301",
    "D415",
    "E501",
    "E741",
)


class EmissionError(RuntimeError):
    """Raised when generated files cannot be written.

    ``written`` lists the files that were written before the failure and
    ``failed`` the file that could not be written.
    """

    def __init__(
        self,
        message: str,
        *,
        written: tuple[str, ...] = (),
        failed: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.written = written
        self.failed = failed


def prepare_output_dir(output_dir: Path, *, overwrite: bool = False) -> None:
    """Create the output directory, refusing a non-empty one unless ``overwrite``.

    Args:
        output_dir (Path): Root output directory.
        overwrite (bool): Allow writing over an existing, non-empty directory.
    """
    if output_dir.exists():
        if not output_dir.is_dir():
            raise EmissionError(f"Output path exists and is not a directory: {output_dir}")
        if any(output_dir.iterdir()) and not overwrite:
            raise EmissionError(f"Output directory is not empty: {output_dir}")
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise EmissionError(f"Failed to create output directory {output_dir}: {exc}") from exc


def write_artifacts(output_dir: Path, artifacts: Mapping[str, str]) -> tuple[str, ...]:
    """Write every artifact in the given order.

    Args:
        output_dir (Path): Root output directory.
        artifacts (Mapping[str, str]): Relative POSIX path to file content.

    Returns:
        tuple[str, ...]: Relative paths written.
    """
    written: list[str] = []
    for relative_path, content in artifacts.items():
        path = output_dir / relative_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise EmissionError(
                f"Failed to write file {path}: {exc}",
                written=tuple(written),
                failed=(relative_path,),
            ) from exc
        written.append(relative_path)
        logger.debug("Wrote %s", path)
    return tuple(written)


def format_generated_tree(*, package_dir: Path) -> None:
    """Run Ruff auto-fixes and formatter against the generated package.

    Args:
        package_dir (Path): Generated package directory to format.
    """
    _run_ruff(package_dir=package_dir, args=("format", str(package_dir)))
    _run_ruff(
        package_dir=package_dir,
        args=(
            "check",
            "--fix",
            "--ignore",
            ",".join(_GENERATED_RUFF_IGNORE_CODES),
            str(package_dir),
        ),
    )
    _run_ruff(package_dir=package_dir, args=("format", str(package_dir)))


def _run_ruff(*, package_dir: Path, args: tuple[str, ...]) -> None:
    command = [sys.executable, "-m", "ruff", *args]
    command_desc = " ".join(args[:1])
    try:
        subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise EmissionError(f"Failed to execute ruff {command_desc} for {package_dir}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        error_text = exc.stderr.strip() or exc.stdout.strip() or str(exc)
        raise EmissionError(f"ruff {command_desc} failed for {package_dir}: {error_text}") from exc
