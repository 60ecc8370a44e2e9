"""Locating files named by directives and loading the modules templates reference."""

from __future__ import annotations

import importlib
import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import ImportNotFoundError
from .options import TemplateOptions
from .source import SourceUnit, normalize_path

LOGGER = logging.getLogger("tplasm.references")


def candidate_paths(requested: str, source: Optional[SourceUnit], options: TemplateOptions) -> List[Path]:
    """Search order: absolute path, the referencing file's directory, base path, library root."""
    path = Path(requested)
    if path.is_absolute():
        return [path]
    candidates: List[Path] = []
    if source is not None and source.directory is not None:
        candidates.append(source.directory / path)
    candidates.append(Path(options.base_path) / path)
    if options.library_path is not None:
        candidates.append(Path(options.library_path) / path)
    unique: List[Path] = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def resolve_file(requested: str, source: Optional[SourceUnit], options: TemplateOptions) -> str:
    """Return the normalized path of the first existing candidate."""
    searched = candidate_paths(requested, source, options)
    for candidate in searched:
        if candidate.is_file():
            return normalize_path(candidate)
    raise ImportNotFoundError(
        requested,
        [candidate.as_posix() for candidate in searched],
        referenced_from=source.path if source is not None else "",
    )


def reference_binding(name: str) -> str:
    """Global name a ``reference`` directive binds, matching ``import a.b``."""
    return name.split(".", 1)[0]


def module_binding(path: str | Path) -> str:
    path = Path(path)
    return path.stem if path.suffix == ".py" else path.name


def check_reference(name: str, referenced_from: str = "") -> None:
    try:
        spec = importlib.util.find_spec(name)
    except (ImportError, ValueError):
        spec = None
    if spec is None:
        raise ImportNotFoundError(name, list(sys.path), referenced_from=referenced_from)


def load_file_module(path: str | Path) -> ModuleType:
    """Load a ``.py`` file, or a package directory, as a fresh module."""
    path = Path(path)
    name = module_binding(path)
    if path.is_dir():
        init = path / "__init__.py"
        spec = importlib.util.spec_from_file_location(name, init, submodule_search_locations=[str(path)])
    else:
        spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportNotFoundError(str(path), [str(path)])
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _loaded_from(module: ModuleType, root: Path) -> bool:
    filename = getattr(module, "__file__", None)
    if not filename:
        return False
    return Path(filename).resolve().is_relative_to(root.resolve())


def load_package_module(path: str | Path) -> ModuleType:
    """Import a module fetched by the package resolver from its target directory.

    The target is on ``sys.path`` only for the import; a cached module of the
    same name loaded from elsewhere is dropped first.
    """
    path = Path(path)
    root = str(path.parent)
    name = module_binding(path)
    cached = sys.modules.get(name)
    if cached is not None and not _loaded_from(cached, path.parent):
        for key in [key for key in sys.modules if key == name or key.startswith(name + ".")]:
            del sys.modules[key]
    importlib.invalidate_caches()
    sys.path.insert(0, root)
    try:
        return importlib.import_module(name)
    finally:
        sys.path.remove(root)


def build_reference_globals(
    references: Sequence[str] = (),
    assembly_filenames: Sequence[str] = (),
    packages: Sequence[str] = (),
) -> Dict[str, ModuleType]:
    """Modules injected into every loaded unit's globals."""
    namespace: Dict[str, ModuleType] = {}
    for name in references:
        LOGGER.debug("Adding referenced module: %s", name)
        importlib.import_module(name)
        binding = reference_binding(name)
        namespace[binding] = importlib.import_module(binding)
    for filename in assembly_filenames:
        LOGGER.debug("Adding file module: %s", filename)
        namespace[module_binding(filename)] = load_file_module(filename)
    for filename in packages:
        LOGGER.debug("Adding package module: %s", filename)
        namespace[module_binding(filename)] = load_package_module(filename)
    return namespace


def reference_names(
    references: Iterable[str] = (),
    assembly_filenames: Iterable[str] = (),
    packages: Iterable[str] = (),
) -> set[str]:
    names = {reference_binding(name) for name in references}
    names.update(module_binding(path) for path in assembly_filenames)
    names.update(module_binding(path) for path in packages)
    return names


__all__ = [
    "build_reference_globals",
    "candidate_paths",
    "check_reference",
    "load_file_module",
    "load_package_module",
    "module_binding",
    "reference_binding",
    "reference_names",
    "resolve_file",
]
