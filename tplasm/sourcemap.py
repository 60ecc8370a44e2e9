from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .source import SourceUnit

MAP_VERSION = 1


def _normalize_path_string(value: Optional[str]) -> str:
    if not value:
        return ""
    return Path(value).as_posix()


class SourceMap:
    """
    Flattened source map of a build output.

    Every output line either points at ``(sources[index], line)`` or is
    unmapped. Nested generated units are already resolved down to the file
    the author wrote, so lookups never need the build state.
    """

    def __init__(
        self,
        *,
        output: str,
        sources: Iterable[Dict[str, object]],
        entries: Iterable[Sequence[int]],
    ) -> None:
        self.output = output
        self.sources: List[Dict[str, object]] = list(sources)
        self.entries: List[Tuple[int, int]] = [(int(line), int(index)) for line, index in entries]

    @classmethod
    def from_unit(cls, unit: SourceUnit) -> "SourceMap":
        """Resolve every output line of ``unit`` through its parent chain."""
        sources: List[Dict[str, object]] = []
        lookup: List[str] = []
        entries: List[Tuple[int, int]] = []
        for index in range(len(unit.parent_map)):
            resolved = unit.resolve_line(index)
            if resolved is None:
                entries.append((-1, -1))
                continue
            origin, line = resolved
            if origin.path not in lookup:
                lookup.append(origin.path)
                sources.append(
                    {
                        "file": origin.name,
                        "path": _normalize_path_string(origin.path),
                        "real": origin.is_real_file,
                    }
                )
            entries.append((line, lookup.index(origin.path)))
        return cls(output=unit.name, sources=sources, entries=entries)

    @classmethod
    def from_json(cls, data: Dict[str, object]) -> "SourceMap":
        version = data.get("version", MAP_VERSION)
        if version != MAP_VERSION:
            raise ValueError(f"Unsupported source map version {version}")
        return cls(
            output=str(data.get("output", "")),
            sources=data.get("sources", []),  # type: ignore[arg-type]
            entries=data.get("map", []),  # type: ignore[arg-type]
        )

    @classmethod
    def from_file(cls, path: Path | str) -> "SourceMap":
        return cls.from_json(json.loads(Path(path).read_text(encoding="utf-8")))

    def to_json(self) -> Dict[str, object]:
        return {
            "version": MAP_VERSION,
            "output": self.output,
            "sources": list(self.sources),
            "map": [list(entry) for entry in self.entries],
        }

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self.to_json(), indent=2), encoding="utf-8")
        tmp_path.replace(path)
        return path

    def lookup(self, line: int) -> Optional[Tuple[str, int]]:
        """Origin ``(path, line)`` of 1-based output ``line``, or None when unmapped."""
        index = line - 1
        if index < 0 or index >= len(self.entries):
            return None
        source_line, source_index = self.entries[index]
        if source_line < 0 or source_index < 0:
            return None
        return str(self.sources[source_index]["path"]), source_line

    def rows(self) -> List[Tuple[int, str, str]]:
        """``(output line, file, line)`` for display; unmapped lines show ``-``."""
        rows: List[Tuple[int, str, str]] = []
        for index in range(len(self.entries)):
            origin = self.lookup(index + 1)
            if origin is None:
                rows.append((index + 1, "-", "-"))
            else:
                rows.append((index + 1, Path(origin[0]).name, str(origin[1])))
        return rows

    def __len__(self) -> int:
        return len(self.entries)


__all__ = ["SourceMap"]
