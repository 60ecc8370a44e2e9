"""Fetching external packages named by ``nuget`` directives."""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from .errors import PackageResolutionError

LOGGER = logging.getLogger("tplasm.packages")


class PackageResolver:
    """Resolves ``name``/``version`` to loadable module paths inside ``destination``."""

    def resolve(self, name: str, version: Optional[str], destination: Path) -> List[Path]:
        raise NotImplementedError


def loadable_modules(destination: Path) -> List[Path]:
    """Top-level modules and packages installed into ``destination``."""
    found: List[Path] = []
    if not destination.exists():
        return found
    for entry in sorted(destination.iterdir(), key=lambda p: p.name):
        if entry.name.startswith((".", "_")) or entry.name.endswith((".dist-info", ".egg-info", ".data")):
            continue
        if entry.is_dir() and (entry / "__init__.py").exists():
            found.append(entry)
        elif entry.is_file() and entry.suffix == ".py":
            found.append(entry)
    return found


class PipPackageResolver(PackageResolver):
    """Installs packages with ``pip install --target`` into the bin folder."""

    def __init__(self, *, timeout: Optional[float] = None, python: Optional[str] = None):
        self.timeout = timeout
        self.python = python or sys.executable

    def _requirement(self, name: str, version: Optional[str]) -> str:
        return f"{name}=={version}" if version else name

    def resolve(self, name: str, version: Optional[str], destination: Path) -> List[Path]:
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.python,
            "-m",
            "pip",
            "install",
            "--quiet",
            "--disable-pip-version-check",
            "--target",
            str(destination),
            self._requirement(name, version),
        ]
        LOGGER.info("Resolving package %s into %s", self._requirement(name, version), destination)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise PackageResolutionError(f"Timed out resolving package '{name}' after {exc.timeout}s") from exc
        except OSError as exc:
            raise PackageResolutionError(f"Cannot run package installer: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip()
            raise PackageResolutionError(f"Unable to resolve package '{name}': {message}")
        return loadable_modules(destination)


__all__ = ["PackageResolver", "PipPackageResolver", "loadable_modules"]
