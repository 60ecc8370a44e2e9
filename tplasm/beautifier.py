"""Scope-aware re-indentation of emitted assembly."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Pattern, Sequence

from .accumulator import NEUTRAL, SourceResult, SourceResultMap


@dataclass
class Beautifier:
    """Indents lines between open/close keywords and spaces out labels.

    The output map is kept 1:1 with the output lines: inserted blank lines
    get a neutral entry, every other line takes the next input entry.
    """

    open_keywords: Sequence[str] = (".scope", ".proc")
    close_keywords: Sequence[str] = (".endscope", ".endproc")
    label_pattern: Pattern[str] = field(default_factory=lambda: re.compile(r"^(\.[\w\-]+:)"))
    indent_text: str = "\t"

    def _starts_with(self, line: str, keywords: Sequence[str]) -> bool:
        lowered = line.lower()
        return any(lowered.startswith(keyword) for keyword in keywords)

    def __call__(self, source: SourceResult) -> SourceResult:
        return self.beautify(source)

    def beautify(self, source: SourceResult) -> SourceResult:
        out: List[str] = []
        out_map: List[SourceResultMap] = []
        in_map = source.map
        idx = 0
        indent = 0
        last_blank = False

        def blank() -> None:
            out.append("")
            out_map.append(NEUTRAL)

        code = source.code
        if code and not code.endswith("\n"):
            code += "\n"
        lines = code.split("\n")
        last = len(lines) - 1
        for position, raw in enumerate(lines):
            line = raw.strip()
            opens = self._starts_with(line, self.open_keywords)
            closes = self._starts_with(line, self.close_keywords)

            if opens and not last_blank:
                blank()
            if closes:
                indent = max(indent - 1, 0)
            if self.label_pattern.match(line):
                blank()

            out.append(self.indent_text * indent + line if line else "")
            if position == last:
                # the element after the final newline takes the trailing neutral entry
                out_map.append(NEUTRAL)
            elif idx < len(in_map):
                out_map.append(in_map[idx])
                idx += 1
            else:
                out_map.append(NEUTRAL)

            if opens:
                indent += 1
            last_blank = not line

            if closes:
                blank()
                last_blank = True

        return SourceResult("".join(f"{line}\n" for line in out), out_map)


__all__ = ["Beautifier"]
