"""Collects text emitted by a running template together with its source positions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class SourceResultMap:
    """Origin of one output line; ``line`` 0 with no file is the neutral entry."""

    line: int
    source_filename: str = ""

    @property
    def is_mapped(self) -> bool:
        return self.line > 0 and bool(self.source_filename)

    def to_json(self) -> List[Any]:
        return [self.line, self.source_filename]

    @classmethod
    def from_json(cls, payload: Sequence[Any]) -> "SourceResultMap":
        line, filename = payload
        return cls(int(line), str(filename or ""))


NEUTRAL = SourceResultMap(0, "")


@dataclass
class SourceResult:
    """Output text plus one map entry per output line."""

    code: str
    map: List[SourceResultMap] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {"code": self.code, "map": [entry.to_json() for entry in self.map]}

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "SourceResult":
        return cls(
            code=str(payload.get("code", "")),
            map=[SourceResultMap.from_json(entry) for entry in payload.get("map", [])],
        )


class OutputAccumulator:
    """Append-only output buffer for a single template run.

    One accumulator belongs to one execution. ``finish`` hands back the text
    and map and leaves the accumulator empty for the next run.
    """

    def __init__(self) -> None:
        self._lines: List[str] = []
        self._map: List[SourceResultMap] = []

    def reset(self) -> None:
        self._lines = []
        self._map = []

    def emit(self, text: Any, line: int = 0, source_filename: str = "") -> None:
        text = "" if text is None else str(text)
        parts = text.split("\n")
        self._lines.extend(parts)
        if len(parts) == 1:
            self._map.append(SourceResultMap(int(line), source_filename or ""))
        else:
            # a multi-line literal cannot be attributed to one source line
            self._map.extend(NEUTRAL for _ in parts)

    def emit_raw(self, value: Any, line: int = 0, source_filename: str = "") -> None:
        self.emit("" if value is None else str(value), line, source_filename)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def finish(self) -> SourceResult:
        code = "".join(f"{line}\n" for line in self._lines)
        result = SourceResult(code, list(self._map))
        self.reset()
        return result


__all__ = ["NEUTRAL", "OutputAccumulator", "SourceResult", "SourceResultMap"]
