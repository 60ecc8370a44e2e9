"""Source units: real template files and the generated files built from them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .accumulator import SourceResultMap
from .errors import BuildStateError

_LINE_SPLIT = re.compile(r"\r\n|\r|\n")


def normalize_path(path: str | Path) -> str:
    """Absolute POSIX form used as a unit's identity."""
    return Path(path).resolve().as_posix()


def split_lines(text: str) -> List[str]:
    return _LINE_SPLIT.split(text)


@dataclass(frozen=True)
class ParentSourceMapReference:
    """Points an output line at ``line`` of ``parents[parent_index]``; -1/-1 when unmapped."""

    line: int
    parent_index: int

    @property
    def is_mapped(self) -> bool:
        return self.line >= 0 and self.parent_index >= 0


UNMAPPED = ParentSourceMapReference(-1, -1)


@dataclass(eq=False)
class SourceUnit:
    """A template file, or a virtual unit generated during the build."""

    path: str
    content: List[str] = field(default_factory=list)
    is_real_file: bool = True
    name: str = ""
    parents: List["SourceUnit"] = field(default_factory=list)
    children: List["SourceUnit"] = field(default_factory=list)
    parent_map: List[ParentSourceMapReference] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = Path(self.path).name

    @classmethod
    def from_file(cls, path: str | Path) -> "SourceUnit":
        resolved = Path(path).resolve()
        text = resolved.read_text(encoding="utf-8")
        return cls(path=resolved.as_posix(), content=split_lines(text), is_real_file=True)

    @classmethod
    def from_text(cls, name: str, text: str) -> "SourceUnit":
        return cls(path=name, content=split_lines(text), is_real_file=False)

    @property
    def directory(self) -> Optional[Path]:
        if not self.is_real_file or not self.path:
            return None
        return Path(self.path).parent

    @property
    def stem(self) -> str:
        return Path(self.name).stem.split(".")[0] or "template"

    def mtime_ns(self) -> int:
        return Path(self.path).stat().st_mtime_ns

    def add_child(self, child: "SourceUnit") -> None:
        if child not in self.children:
            self.children.append(child)

    def resolve_line(self, index: int) -> Optional[Tuple["SourceUnit", int]]:
        """Follow output line ``index`` (0 based) back to its origin and 1-based line.

        The origin is a real file, or an in-memory root unit with no parents.
        """
        if self.is_real_file:
            return self, index + 1
        if index < 0 or index >= len(self.parent_map):
            return None
        entry = self.parent_map[index]
        if not entry.is_mapped:
            return None
        parent = self.parents[entry.parent_index]
        if parent.is_real_file or not parent.parents:
            return parent, entry.line
        return parent.resolve_line(entry.line - 1)

    def __repr__(self) -> str:
        kind = "file" if self.is_real_file else "generated"
        return f"SourceUnit({self.path!r}, {kind}, lines={len(self.content)})"


def compose_parent_map(
    unit: SourceUnit,
    parent: SourceUnit,
    entries: Sequence[SourceResultMap],
    known_units: Iterable[SourceUnit],
) -> None:
    """Rewrite ``entries`` as references into ``unit``'s parent list.

    ``parent`` is always parent 0. Every other file named by an entry is
    looked up among ``known_units`` and appended the first time it is seen.
    Entries without a file become the -1/-1 sentinel.
    """
    known = list(known_units)
    parents: List[SourceUnit] = [parent]
    lookup: List[str] = [parent.path]
    parent.add_child(unit)
    parent_map: List[ParentSourceMapReference] = []

    for entry in entries:
        if entry.line >= 0 and entry.source_filename.strip():
            filename = entry.source_filename
            if filename not in lookup:
                found = next((candidate for candidate in known if candidate.path == filename), None)
                if found is None:
                    raise BuildStateError(
                        f"Cannot find file {filename} in build state, referenced in {parent.name}, need a rebuild?"
                    )
                parents.append(found)
                lookup.append(found.path)
                found.add_child(unit)
            parent_map.append(ParentSourceMapReference(entry.line, lookup.index(filename)))
            continue
        parent_map.append(UNMAPPED)

    unit.parents = parents
    unit.parent_map = parent_map


__all__ = [
    "ParentSourceMapReference",
    "SourceUnit",
    "UNMAPPED",
    "compose_parent_map",
    "normalize_path",
    "split_lines",
]
