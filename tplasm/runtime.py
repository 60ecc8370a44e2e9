"""Base classes and registry used by generated template programs."""

from __future__ import annotations

from typing import Dict, Type

from .accumulator import OutputAccumulator, SourceResult
from .errors import BuildStateError


class LibraryBase:
    """Base for library units imported by other templates."""

    def initialise(self) -> None:
        # called before the importing template executes; order is unspecified
        pass


class TemplateRunner:
    """Base for runnable template units."""

    def initialise(self) -> None:
        pass

    def execute(self) -> None:
        raise NotImplementedError

    def run(self, accumulator: OutputAccumulator) -> SourceResult:
        accumulator.reset()
        self.initialise()
        self.execute()
        return accumulator.finish()


class LibraryRegistry:
    """Maps qualified ``Namespace.Class`` names to the classes compiled units define."""

    def __init__(self) -> None:
        self._classes: Dict[str, Type] = {}

    def register(self, qualified_name: str, cls: Type) -> Type:
        self._classes[qualified_name] = cls
        return cls

    def lookup(self, qualified_name: str) -> Type:
        try:
            return self._classes[qualified_name]
        except KeyError:
            raise BuildStateError(
                f"'{qualified_name}' has not been loaded, is the unit that defines it part of this build?"
            ) from None

    def create(self, qualified_name: str):
        return self.lookup(qualified_name)()

    def __contains__(self, qualified_name: object) -> bool:
        return qualified_name in self._classes

    def names(self) -> list[str]:
        return sorted(self._classes)


__all__ = ["LibraryBase", "LibraryRegistry", "TemplateRunner"]
