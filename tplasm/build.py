"""Incremental build of template units: transpile, compile, cache and run.

A top level build walks the import graph of the root file, builds or
reloads every library in dependency order, then runs the root unit and
composes its output map back onto the files that produced each line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from . import csasm
from .accumulator import SourceResult
from .assembler import PreProcessResult, create_template, get_assembly_name
from .compiler import BINARY_SUFFIX, IncludeSource, compile_template, is_loadable
from .dialect import TemplateEngine
from .errors import BuildStateError
from .executor import TemplateExecutor, run_isolated
from .graph import DependencyGraph, GraphNode
from .manifest import DependencyManifest, manifest_path
from .options import TemplateOptions
from .packages import PackageResolver, PipPackageResolver
from .references import check_reference, reference_names, resolve_file
from .source import SourceUnit, compose_parent_map, split_lines

LOGGER = logging.getLogger("tplasm.build")

LIBRARY_SUFFIX = ".generated.tpl"
OUTPUT_SUFFIX = ".generated.asm"
PROGRAM_SUFFIX = ".generated.py"


@dataclass
class UnitBuild:
    """Binary of one graph node, freshly compiled or loaded from the bin folder."""

    node: GraphNode
    namespace: str
    classname: str
    binary_path: Path
    data: bytes
    manifest: DependencyManifest
    rebuilt: bool

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.classname}"


@dataclass
class BuildState:
    """Context of one top-level build; discarded when the build ends."""

    import_to_filename: Dict[Tuple[str, str], str] = field(default_factory=dict)
    filename_to_classname: Dict[str, str] = field(default_factory=dict)
    references: List["ProcessResult"] = field(default_factory=list)
    binary_filenames: List[str] = field(default_factory=list)
    binaries: Dict[str, bytes] = field(default_factory=dict)
    source_units: List[SourceUnit] = field(default_factory=list)
    manifest: DependencyManifest = field(default_factory=DependencyManifest)
    builds: Dict[str, UnitBuild] = field(default_factory=dict)

    def add_source(self, unit: SourceUnit) -> None:
        if all(existing is not unit for existing in self.source_units):
            self.source_units.append(unit)

    def add_binary(self, path: Path, data: bytes) -> None:
        key = str(path)
        if key not in self.binaries:
            self.binary_filenames.append(key)
        self.binaries[key] = data

    @property
    def rebuilt(self) -> List[str]:
        """Paths of the units compiled during this build."""
        return [path for path, build in self.builds.items() if build.rebuilt]


class ProcessResult(SourceUnit):
    """Generated unit produced by building one template file.

    Libraries carry an empty output; the runnable root carries the final
    beautified assembly. ``compiled_data`` stays in memory so later units
    can be loaded without reading the bin folder again.
    """

    def __init__(
        self,
        source: SourceResult,
        compiled_data: bytes,
        state: BuildState,
        namespace: str,
        classname: str,
        *,
        required_build: bool = False,
    ):
        super().__init__(
            path=f"{namespace}.{classname}",
            content=split_lines(source.code),
            is_real_file=False,
        )
        self.source = source
        self.compiled_data = compiled_data
        self.references: List[ProcessResult] = list(state.references)
        self.namespace = namespace
        self.classname = classname
        self.required_build = required_build
        self._state = state

    @property
    def code(self) -> str:
        return self.source.code

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.classname}"

    def set_name(self, name: str) -> None:
        self.name = name
        self.path = name

    def set_parent_and_map(self, parent: SourceUnit) -> None:
        compose_parent_map(self, parent, self.source.map, self._state.source_units)

    def __repr__(self) -> str:
        return f"ProcessResult({self.qualified_name!r}, lines={len(self.content)}, rebuilt={self.required_build})"


class MacroAssembler:
    """Builds a template file and everything it imports."""

    def __init__(
        self,
        options: Optional[TemplateOptions] = None,
        engine: Optional[TemplateEngine] = None,
        *,
        package_resolver: Optional[PackageResolver] = None,
    ):
        self.options = options or TemplateOptions()
        self.engine = engine or csasm.create_engine()
        self.package_resolver = package_resolver or PipPackageResolver(timeout=self.options.timeout)
        self.state: Optional[BuildState] = None

    def log(self, depth: int, message: str, *args) -> None:
        LOGGER.info("%s" + message, "  " * (depth + 1), *args)

    # ------------------------------------------------------------------ entry points
    def process_file(self, source: SourceUnit | str | Path) -> ProcessResult:
        """Build ``source`` and return its final output with a composed source map."""
        unit = source if isinstance(source, SourceUnit) else SourceUnit.from_file(source)
        state = BuildState()
        self.state = state
        self._ensure_bin_folder()

        graph = DependencyGraph(unit, self.options)
        state.add_source(unit)
        for node in graph.libraries():
            build = self._get_binary(node, state, is_library=True)
            result = ProcessResult(
                SourceResult("", []),
                build.data,
                state,
                build.namespace,
                build.classname,
                required_build=build.rebuilt,
            )
            result.set_name(f"{node.unit.stem}{LIBRARY_SUFFIX}")
            state.add_source(node.unit)
            result.set_parent_and_map(node.unit)
            state.references.append(result)
            state.add_source(result)

        build = self._get_binary(graph.root, state, is_library=False)
        result = self._run(build, state)
        result.set_name(f"{unit.stem}{OUTPUT_SUFFIX}")
        result.set_parent_and_map(unit)
        state.add_source(result)
        return result

    def process_text(self, text: str, name: str = "template.tpl") -> ProcessResult:
        """Build in-memory template text; it is never cached."""
        return self.process_file(SourceUnit.from_text(name, text))

    # ------------------------------------------------------------------ build decision
    def binary_path_for(self, binary_name: str) -> Path:
        return self.options.bin_path / f"{binary_name}{BINARY_SUFFIX}"

    def requires_build(self, unit: SourceUnit, binary_path: Path, include_paths: Sequence[str] = ()) -> bool:
        """Whether ``unit`` must be recompiled rather than loaded from ``binary_path``."""
        if self.options.rebuild:
            return True
        if not unit.is_real_file:
            return True
        if not binary_path.exists() or not manifest_path(binary_path).exists():
            return True
        if not is_loadable(binary_path.read_bytes()):
            LOGGER.warning("Cached binary '%s' cannot be loaded, rebuilding", binary_path)
            return True
        newest = max([unit.mtime_ns()] + [Path(path).stat().st_mtime_ns for path in include_paths])
        return binary_path.stat().st_mtime_ns < newest

    # ------------------------------------------------------------------ internals
    def _ensure_bin_folder(self) -> None:
        bin_path = self.options.bin_path
        if not bin_path.exists():
            bin_path.mkdir(parents=True, exist_ok=True)
            self.log(0, "Creating output folder '%s'", bin_path)

    def _get_binary(self, node: GraphNode, state: BuildState, *, is_library: bool) -> UnitBuild:
        unit = node.unit
        namespace, classname, binary_name = get_assembly_name(unit.stem, node.directives, unit.path)
        qualified = f"{namespace}.{classname}"
        for directive, child in node.imports:
            state.import_to_filename[(unit.path, directive.filename)] = child.path

        binary_path = self.binary_path_for(binary_name)
        for path, other in state.builds.items():
            if other.binary_path == binary_path:
                raise BuildStateError(f"'{unit.path}' and '{path}' both write '{binary_path.name}'")
        include_paths = [resolve_file(name, unit, self.options) for name, _line in node.directives.includes]
        rebuild = any(state.builds[child.path].rebuilt for _directive, child in node.imports)
        rebuild = rebuild or self.requires_build(unit, binary_path, include_paths)

        if rebuild:
            self.log(node.depth, "Building binary '%s'", binary_path)
            data, manifest = self._build(node, state, namespace, classname, binary_path, include_paths, is_library)
        else:
            self.log(node.depth, "Loading binary '%s'", binary_path)
            data = binary_path.read_bytes()
            manifest = DependencyManifest.load(binary_path)

        build = UnitBuild(node, namespace, classname, binary_path, data, manifest, rebuild)
        state.builds[unit.path] = build
        state.filename_to_classname[unit.path] = qualified
        state.manifest.merge(manifest)
        state.add_binary(binary_path, data)
        return build

    def _build(
        self,
        node: GraphNode,
        state: BuildState,
        namespace: str,
        classname: str,
        binary_path: Path,
        include_paths: Sequence[str],
        is_library: bool,
    ) -> Tuple[bytes, DependencyManifest]:
        unit = node.unit
        import_classnames = {
            directive.filename: state.filename_to_classname[child.path] for directive, child in node.imports
        }
        pre = create_template(
            self.engine, node.directives, unit.path, import_classnames, namespace, classname, is_library
        )

        manifest = self._collect_references(node, pre)
        for _directive, child in node.imports:
            child_build = state.builds[child.path]
            manifest.merge(child_build.manifest)
            manifest.merge(DependencyManifest(binaries=[str(child_build.binary_path)]))

        if self.options.save_pre_generated_template:
            program_path = binary_path.with_name(f"{namespace}{PROGRAM_SUFFIX}")
            program_path.write_text(pre.content + "\n", encoding="utf-8")
            self.log(node.depth + 1, "Saved generated program '%s'", program_path)

        includes = [IncludeSource(path, Path(path).read_text(encoding="utf-8")) for path in include_paths]
        known = reference_names(manifest.references, manifest.assembly_filenames, manifest.packages)
        data = compile_template(pre, includes, known)

        binary_path.write_bytes(data)
        manifest.save(binary_path)
        return data, manifest

    def _collect_references(self, node: GraphNode, pre: PreProcessResult) -> DependencyManifest:
        unit = node.unit
        manifest = DependencyManifest()
        for name in pre.references:
            check_reference(name, unit.path)
            self.log(node.depth + 1, "Adding reference '%s'", name)
            manifest.merge(DependencyManifest(references=[name]))
        for name in pre.assembly_filenames:
            path = resolve_file(name, unit, self.options)
            self.log(node.depth + 1, "Adding file module '%s'", path)
            manifest.merge(DependencyManifest(assembly_filenames=[path]))
        for name, version in pre.packages:
            self.log(node.depth + 1, "Resolving package '%s'", f"{name}=={version}" if version else name)
            modules = self.package_resolver.resolve(name, version, self.options.package_folder)
            manifest.merge(DependencyManifest(packages=[Path(path).as_posix() for path in modules]))
        return manifest

    def _run(self, build: UnitBuild, state: BuildState) -> ProcessResult:
        manifest = state.manifest
        if self.options.isolated:
            raw = run_isolated(
                state.binary_filenames,
                build.namespace,
                build.classname,
                base_path=self.options.base_path,
                references=manifest.references,
                assembly_filenames=manifest.assembly_filenames,
                packages=manifest.packages,
                timeout=self.options.timeout,
            )
        else:
            executor = TemplateExecutor(
                references=manifest.references,
                assembly_filenames=manifest.assembly_filenames,
                packages=manifest.packages,
            )
            raw = executor.run([state.binaries[name] for name in state.binary_filenames], build.qualified_name)

        source = self.engine.beautify(raw)
        if self.options.save_generated_template:
            output_path = build.binary_path.with_name(f"{build.namespace}{OUTPUT_SUFFIX}")
            output_path.write_text(source.code, encoding="utf-8")
            self.log(build.node.depth + 1, "Saved generated output '%s'", output_path)

        return ProcessResult(
            source,
            build.data,
            state,
            build.namespace,
            build.classname,
            required_build=build.rebuilt,
        )


def process_file(
    source: SourceUnit | str | Path,
    options: Optional[TemplateOptions] = None,
    engine: Optional[TemplateEngine] = None,
) -> ProcessResult:
    return MacroAssembler(options, engine).process_file(source)


__all__ = [
    "BuildState",
    "MacroAssembler",
    "ProcessResult",
    "UnitBuild",
    "process_file",
]
