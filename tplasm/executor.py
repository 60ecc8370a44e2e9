"""Loads compiled units and runs the template entry point."""

from __future__ import annotations

import builtins
import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .accumulator import OutputAccumulator, SourceResult
from .compiler import unpack_binary
from .errors import BuildStateError, RunnerError
from .references import build_reference_globals
from .runtime import LibraryRegistry, TemplateRunner

LOGGER = logging.getLogger("tplasm.executor")


class TemplateExecutor:
    """Runs one template against a fresh accumulator.

    Every binary is loaded into its own globals dict holding the emit
    functions bound to this run's accumulator, the shared registry and the
    referenced modules.
    """

    def __init__(
        self,
        *,
        references: Sequence[str] = (),
        assembly_filenames: Sequence[str] = (),
        packages: Sequence[str] = (),
    ) -> None:
        self.references = list(references)
        self.assembly_filenames = list(assembly_filenames)
        self.packages = list(packages)
        self.registry = LibraryRegistry()
        self.accumulator = OutputAccumulator()
        self._reference_globals: Optional[Dict[str, Any]] = None

    def _base_globals(self) -> Dict[str, Any]:
        if self._reference_globals is None:
            self._reference_globals = build_reference_globals(
                self.references, self.assembly_filenames, self.packages
            )
        namespace: Dict[str, Any] = dict(self._reference_globals)
        namespace.update(
            {
                "__builtins__": builtins,
                "__name__": "tplasm.template",
                "emit": self.accumulator.emit,
                "emit_raw": self.accumulator.emit_raw,
                "registry": self.registry,
            }
        )
        return namespace

    def load(self, data: bytes) -> Dict[str, Any]:
        try:
            units = unpack_binary(data)
        except ValueError as exc:
            raise BuildStateError(f"Cannot load compiled template: {exc}, try a rebuild") from exc
        namespace = self._base_globals()
        for unit in units:
            namespace["__file__"] = unit.filename
            exec(unit.code, namespace)
        return namespace

    def run(self, binaries: Iterable[bytes], qualified_name: str) -> SourceResult:
        """Load ``binaries`` in order, then run the runnable ``qualified_name``."""
        seen: List[bytes] = []
        for data in binaries:
            if any(data is other or data == other for other in seen):
                continue
            seen.append(data)
            self.load(data)
        runner = self.registry.create(qualified_name)
        if not isinstance(runner, TemplateRunner):
            raise BuildStateError(f"{qualified_name} is not a runnable template")
        return runner.run(self.accumulator)


def run_isolated(
    binary_filenames: Sequence[str | Path],
    namespace: str,
    classname: str,
    *,
    base_path: Path,
    references: Sequence[str] = (),
    assembly_filenames: Sequence[str] = (),
    packages: Sequence[str] = (),
    timeout: Optional[float] = None,
    python: Optional[str] = None,
) -> SourceResult:
    """Run a template in a child interpreter via ``python -m tplasm.runner``."""
    cmd: List[str] = [python or sys.executable, "-m", "tplasm.runner", "-n", namespace, "-c", classname, "-b", str(base_path)]
    for filename in binary_filenames:
        cmd.extend(["-l", str(filename)])
    for name in references:
        cmd.extend(["-r", name])
    for filename in assembly_filenames:
        cmd.extend(["-a", str(filename)])
    for filename in packages:
        cmd.extend(["-p", str(filename)])
    LOGGER.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise RunnerError(f"Template runner timed out after {exc.timeout}s") from exc
    if result.stderr.strip() or result.returncode != 0:
        raise RunnerError("Exception in the runner: \n" + (result.stderr or f"exit code {result.returncode}"))
    try:
        payload = json.loads(result.stdout)
    except ValueError as exc:
        raise RunnerError(f"Runner produced invalid output: {exc}") from exc
    return SourceResult.from_json(payload)


__all__ = ["TemplateExecutor", "run_isolated"]
