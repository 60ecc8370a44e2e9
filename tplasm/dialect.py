"""Line classification and rewriting of template lines into Python statements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Pattern, Sequence, Tuple

from .accumulator import SourceResult
from .errors import TemplateSyntaxError

EMIT_FUNC = "emit"
EMIT_RAW_FUNC = "emit_raw"


def _identity(result: SourceResult) -> SourceResult:
    return result


@dataclass
class Dialect:
    """A swappable assembly dialect: which lines are assembly and how output is tidied."""

    name: str
    line_patterns: List[Pattern[str]] = field(default_factory=list)
    inline_marker: str = "@"
    raw_prefix: str = "="
    comment_marker: str = "//"
    namespaces: List[str] = field(default_factory=list)
    beautify: Callable[[SourceResult], SourceResult] = _identity
    requires_tidyup: bool = False
    tidy_marker: str = ""

    def match_line(self, line: str) -> Optional[str]:
        """Return the assembly portion of ``line`` or None when it is not assembly."""
        for pattern in self.line_patterns:
            match = pattern.match(line)
            if match:
                return match.group("line")
        return None


def _skip_string(text: str, pos: int) -> int:
    quote = text[pos]
    pos += 1
    while pos < len(text):
        ch = text[pos]
        if ch == "\\":
            pos += 2
            continue
        if ch == quote:
            return pos + 1
        pos += 1
    raise ValueError("Unterminated string literal")


def find_inline_expressions(text: str, marker: str = "@") -> List[Tuple[int, int, str]]:
    """Locate ``marker(expr)`` spans in ``text``.

    Returns ``(start, end, expr)`` triples where ``text[start:end]`` is the
    whole span including marker and parentheses. Nesting depth is tracked
    character by character and quoted strings inside the expression are
    skipped, so ``@(f(a, g(")")))`` is extracted whole.
    """
    found: List[Tuple[int, int, str]] = []
    opener = marker + "("
    pos = 0
    while True:
        start = text.find(opener, pos)
        if start < 0:
            return found
        cursor = start + len(opener)
        depth = 1
        while cursor < len(text):
            ch = text[cursor]
            if ch in ("'", '"'):
                cursor = _skip_string(text, cursor)
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    break
            cursor += 1
        if depth:
            raise ValueError(f"Unbalanced parentheses in inline expression starting at column {start + 1}")
        expr = text[start + len(opener):cursor].strip()
        if not expr:
            raise ValueError(f"Empty inline expression at column {start + 1}")
        found.append((start, cursor + 1, expr))
        pos = cursor + 1


def _leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


@dataclass
class EngineResult:
    lines: List[str]
    map: List[int]


class TemplateEngine:
    """Rewrites body lines of a template into Python statements, one for one."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    @property
    def name(self) -> str:
        return self.dialect.name

    @property
    def namespaces(self) -> Sequence[str]:
        return self.dialect.namespaces

    def beautify(self, result: SourceResult) -> SourceResult:
        return self.dialect.beautify(result)

    def process(self, lines: Sequence[str], source_filename: str, *, first_line: int = 1) -> EngineResult:
        """Translate ``lines``; ``map[i]`` is the original line number of output line ``i``."""
        out: List[str] = []
        line_map: List[int] = []
        for offset, line in enumerate(lines):
            line_number = first_line + offset
            out.append(self.process_line(line, line_number, source_filename))
            line_map.append(line_number)
        return EngineResult(out, line_map)

    def process_line(self, line: str, line_number: int, source_filename: str) -> str:
        stripped = line.strip()
        if not stripped:
            return ""
        indent = _leading_whitespace(line)
        marker = self.dialect.comment_marker
        if marker and stripped.startswith(marker):
            return f"{indent}# {stripped[len(marker):].strip()}".rstrip()
        prefix = self.dialect.raw_prefix
        if prefix and stripped.startswith(prefix):
            return indent + self.process_variable_line(stripped[len(prefix):], line_number, source_filename)
        asm = self.dialect.match_line(line)
        if asm is not None:
            try:
                return indent + self.process_asm_line(asm, line_number, source_filename)
            except ValueError as exc:
                raise TemplateSyntaxError(
                    f"{source_filename}:{line_number}: {exc} in '{stripped}'",
                    line=line,
                    kind="inline",
                    filename=source_filename,
                    line_number=line_number,
                ) from exc
        return line.rstrip("\r\n")

    def process_asm_line(self, text: str, line_number: int, source_filename: str) -> str:
        output = text
        if self.dialect.requires_tidyup:
            output = output.strip()
            if self.dialect.tidy_marker:
                idx = output.find(self.dialect.tidy_marker)
                if idx != -1:
                    output = output[idx + len(self.dialect.tidy_marker):]
        elif output.strip() == ".":
            output = ""

        spans = find_inline_expressions(output, self.dialect.inline_marker)
        if not spans:
            return f"{EMIT_FUNC}({output!r}, {line_number}, {source_filename!r})"

        template_parts: List[str] = []
        expressions: List[str] = []
        pos = 0
        for index, (start, end, expr) in enumerate(spans):
            template_parts.append(output[pos:start].replace("{", "{{").replace("}", "}}"))
            template_parts.append("{%d}" % index)
            expressions.append(f"({expr})")
            pos = end
        template_parts.append(output[pos:].replace("{", "{{").replace("}", "}}"))
        literal = "".join(template_parts)
        return f"{EMIT_FUNC}({literal!r}.format({', '.join(expressions)}), {line_number}, {source_filename!r})"

    def process_variable_line(self, expr: str, line_number: int, source_filename: str) -> str:
        expr = expr.strip()
        if expr.endswith(";"):
            expr = expr[:-1].rstrip()
        return f"{EMIT_RAW_FUNC}({expr}, {line_number}, {source_filename!r})"


__all__ = ["Dialect", "EngineResult", "TemplateEngine", "find_inline_expressions"]
