"""tplasm: assembly templates with embedded Python, built and run incrementally."""

from __future__ import annotations

__version__ = "0.3.0"

from .accumulator import OutputAccumulator, SourceResult, SourceResultMap
from .build import BuildState, MacroAssembler, ProcessResult, process_file
from .errors import (
    BuildStateError,
    CompilationError,
    ImportNotFoundError,
    PackageResolutionError,
    RunnerError,
    TemplateCompilationError,
    TemplateError,
    TemplateSyntaxError,
)
from .options import TemplateOptions
from .sourcemap import SourceMap

__all__ = [
    "BuildState",
    "BuildStateError",
    "CompilationError",
    "ImportNotFoundError",
    "MacroAssembler",
    "OutputAccumulator",
    "PackageResolutionError",
    "ProcessResult",
    "RunnerError",
    "SourceMap",
    "SourceResult",
    "SourceResultMap",
    "TemplateCompilationError",
    "TemplateError",
    "TemplateOptions",
    "TemplateSyntaxError",
    "__version__",
    "process_file",
]
