"""Exception types raised by the template pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional


class TemplateError(Exception):
    """Base class for every failure raised by the build pipeline."""


class TemplateSyntaxError(TemplateError):
    """Malformed directive or template line."""

    def __init__(self, message: str, *, line: str = "", kind: str = "", filename: str = "", line_number: int = -1):
        super().__init__(message)
        self.line = line
        self.kind = kind
        self.filename = filename
        self.line_number = line_number


class ImportNotFoundError(TemplateError):
    """An import/include/assembly target could not be located."""

    def __init__(self, requested: str, searched: Iterable[str], *, referenced_from: str = ""):
        self.requested = requested
        self.searched: List[str] = list(searched)
        self.referenced_from = referenced_from
        where = f" (referenced from '{referenced_from}')" if referenced_from else ""
        tried = ", ".join(f"'{path}'" for path in self.searched) or "no search paths"
        super().__init__(f"Cannot find '{requested}'{where}; searched {tried}")


class BuildStateError(TemplateError):
    """The build order invariant was violated, e.g. an import was never built."""


class PackageResolutionError(TemplateError):
    """The external package resolver failed."""


class RunnerError(TemplateError):
    """The isolated template runner failed."""


@dataclass
class CompilationError:
    message: str
    line: int = -1
    filename: str = ""
    generated_line: int = -1

    def __str__(self) -> str:
        location = self.filename or "<unknown>"
        if self.line >= 0:
            location = f"{location}:{self.line}"
        return f"{location}: {self.message}"


class TemplateCompilationError(TemplateError):
    """The generated program failed to compile."""

    def __init__(self, errors: Iterable[CompilationError], *, filename: str = "", generated_code: str = ""):
        self.errors: List[CompilationError] = list(errors)
        self.filename = filename
        self.generated_code = generated_code
        super().__init__("Unable to compile template: " + "\n".join(error.message for error in self.errors))

    def first(self) -> Optional[CompilationError]:
        return self.errors[0] if self.errors else None


__all__ = [
    "BuildStateError",
    "CompilationError",
    "ImportNotFoundError",
    "PackageResolutionError",
    "RunnerError",
    "TemplateCompilationError",
    "TemplateError",
    "TemplateSyntaxError",
]
