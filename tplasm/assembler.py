"""Turns template source into a compilable Python program.

Directive lines (``library``, ``import``, ``include``, ``reference``,
``assembly``, ``nuget``, ``using``) are interpreted here and replaced by
blank lines so that every remaining line keeps its position; the rest is
handed to the dialect engine and wrapped in a generated class.
"""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .dialect import TemplateEngine
from .errors import BuildStateError, TemplateSyntaxError

DEFAULT_NAMESPACE_PREFIX = "app"
DEFAULT_CLASSNAME = "Template"

RUNTIME_HEADER = ["from tplasm.runtime import LibraryBase, TemplateRunner"]
BODY_INDENT = "    "

DIRECTIVES = ("library", "import", "include", "reference", "assembly", "nuget", "using")

LIBRARY_RE = re.compile(r'^library\s+(?:"(?P<quoted>[^"]*)"|(?P<bare>[\w.]+))\s*;$')
IMPORT_RE = re.compile(r'^import\s+(?P<alias>[A-Za-z_]\w*)\s*=\s*"(?P<filename>[^"]+)"\s*;$')
INCLUDE_RE = re.compile(r'^include\s+"(?P<filename>[^"]*)"\s*;$')
REFERENCE_RE = re.compile(r"^reference\s+(?P<name>[A-Za-z_][\w.]*)\s*;$")
ASSEMBLY_RE = re.compile(r'^assembly\s+(?:"(?P<quoted>[^"]*)"|(?P<bare>[^\s;]+))\s*;$')
NUGET_RE = re.compile(r'^nuget\s+(?P<name>[A-Za-z0-9_.\-]+)\s*(?:,\s*"?(?P<version>[^";\s]+)"?)?\s*;$')
USING_RE = re.compile(r"^using\s+(?:(?P<alias>[A-Za-z_]\w*)\s*=\s*)?(?P<module>[A-Za-z_][\w.]*)\s*;$")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")


@dataclass
class ImportDirective:
    alias: str
    filename: str
    line_number: int


@dataclass
class TemplateDirectives:
    """Everything the directive lines of one unit declare."""

    library: Optional[str] = None
    imports: List[ImportDirective] = field(default_factory=list)
    includes: List[Tuple[str, int]] = field(default_factory=list)
    references: List[str] = field(default_factory=list)
    assembly_filenames: List[str] = field(default_factory=list)
    packages: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    usings: List[str] = field(default_factory=list)
    body: List[str] = field(default_factory=list)


@dataclass
class PreProcessResult:
    """Output of the template assembler for one unit."""

    references: List[str]
    assembly_filenames: List[str]
    packages: List[Tuple[str, Optional[str]]]
    includes: List[Tuple[str, int]]
    content: str
    code_map: List[int]
    filename: str
    namespace: str
    classname: str

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.classname}"

    @property
    def lines(self) -> List[str]:
        return self.content.split("\n")

    def original_line(self, generated_line: int) -> int:
        """Map a 1-based generated line to its 1-based original line, -1 when unknown."""
        index = generated_line - 1
        if 0 <= index < len(self.code_map) and self.code_map[index] > 0:
            return self.code_map[index]
        return -1


def _directive_keyword(stripped: str) -> Optional[str]:
    for keyword in DIRECTIVES:
        # ``library = x`` or ``import os`` are Python, not directives
        if re.match(rf"{keyword}\s+(?![-+*/%&|^]?=)", stripped):
            if stripped.endswith(";") or (keyword in ("import", "include", "library", "assembly") and '"' in stripped):
                return keyword
    return None


def _syntax_error(kind: str, line: str, filename: str, line_number: int, detail: str = "") -> TemplateSyntaxError:
    suffix = f" {detail}" if detail else ""
    return TemplateSyntaxError(
        f"Incorrect {kind} syntax in '{line.strip()}' at {filename}:{line_number}{suffix}",
        line=line,
        kind=kind,
        filename=filename,
        line_number=line_number,
    )


def parse_directives(lines: Sequence[str], filename: str = "", *, first_line: int = 1) -> TemplateDirectives:
    """Collect directives and return the body with directive lines blanked."""
    directives = TemplateDirectives()
    in_header = True
    comment_markers = ("//", "#")

    for offset, line in enumerate(lines):
        line_number = first_line + offset
        stripped = line.strip()
        keyword = _directive_keyword(stripped) if stripped else None

        if keyword is None or (keyword == "using" and not in_header):
            if stripped and not stripped.startswith(comment_markers):
                in_header = False
            directives.body.append(line)
            continue

        if keyword == "library":
            match = LIBRARY_RE.match(stripped)
            name = (match.group("quoted") or match.group("bare") or "").strip() if match else ""
            if not match or not name:
                raise _syntax_error(keyword, line, filename, line_number)
            directives.library = name
        elif keyword == "import":
            match = IMPORT_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            directives.imports.append(ImportDirective(match.group("alias"), match.group("filename").strip(), line_number))
        elif keyword == "include":
            match = INCLUDE_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            if not match.group("filename").strip():
                raise _syntax_error(keyword, line, filename, line_number, "blank filename")
            directives.includes.append((match.group("filename").strip(), line_number))
        elif keyword == "reference":
            match = REFERENCE_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            directives.references.append(match.group("name"))
        elif keyword == "assembly":
            match = ASSEMBLY_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            name = (match.group("quoted") or match.group("bare") or "").strip()
            if name:
                directives.assembly_filenames.append(name)
        elif keyword == "nuget":
            match = NUGET_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            directives.packages.append((match.group("name"), match.group("version")))
        elif keyword == "using":
            match = USING_RE.match(stripped)
            if not match:
                raise _syntax_error(keyword, line, filename, line_number)
            module, alias = match.group("module"), match.group("alias")
            directives.usings.append(f"import {module} as {alias}" if alias else f"import {module}")

        directives.body.append("")

    return directives


def get_assembly_name(stem: str, directives: TemplateDirectives, filename: str = "") -> Tuple[str, str, str]:
    """Return ``(namespace, classname, binary_name)`` for a unit."""
    safe_stem = re.sub(r"\W", "_", stem) or "template"
    if safe_stem[0].isdigit():
        safe_stem = f"_{safe_stem}"
    namespace = f"{DEFAULT_NAMESPACE_PREFIX}.{safe_stem}"
    classname = DEFAULT_CLASSNAME
    if directives.library:
        qualified = directives.library
        if "." in qualified:
            namespace, classname = qualified.rsplit(".", 1)
        else:
            classname = qualified
    for part in namespace.split(".") + [classname]:
        if not _IDENTIFIER_RE.match(part):
            raise TemplateSyntaxError(
                f"Invalid library name '{namespace}.{classname}' in {filename or stem}",
                line=f"library {directives.library};",
                kind="library",
                filename=filename,
            )
    return namespace, classname, namespace


def create_template(
    engine: TemplateEngine,
    directives: TemplateDirectives,
    filename: str,
    import_classnames: Dict[str, str],
    namespace: str,
    classname: str = DEFAULT_CLASSNAME,
    is_library: bool = False,
    *,
    first_line: int = 1,
) -> PreProcessResult:
    """Build the program text and line map for one unit.

    ``import_classnames`` maps each import's written path to the qualified
    name of the library already built for it.
    """
    qualified = f"{namespace}.{classname}"
    prefix: List[str] = list(RUNTIME_HEADER) + list(engine.namespaces) + list(directives.usings)
    init_calls: List[str] = []
    for directive in directives.imports:
        if directive.filename not in import_classnames:
            raise BuildStateError(
                f"File '{directive.filename}' imported by {filename} does not appear to have been built."
            )
        prefix.append(f"{directive.alias} = registry.create({import_classnames[directive.filename]!r})")
        init_calls.append(f"{BODY_INDENT * 2}{directive.alias}.initialise()")

    if is_library:
        prefix.append(f"class {classname}(LibraryBase):")
        indent = BODY_INDENT
    else:
        prefix.append(f"class {classname}(TemplateRunner):")
        prefix.append(f"{BODY_INDENT}def execute(self):")
        indent = BODY_INDENT * 2

    processed = engine.process(directives.body, filename, first_line=first_line)
    body = textwrap.dedent("\n".join(processed.lines)).split("\n")
    body = [f"{indent}{line}" if line.strip() else "" for line in body]

    suffix: List[str] = [f"{indent}pass"]
    if not is_library:
        suffix.append(f"{BODY_INDENT}def initialise(self):")
        suffix.extend(init_calls)
        suffix.append(f"{BODY_INDENT * 2}pass")
    suffix.append(f"registry.register({qualified!r}, {classname})")

    program = prefix + body + suffix
    code_map = [0] * len(prefix) + list(processed.map) + [0] * len(suffix)

    return PreProcessResult(
        references=list(directives.references),
        assembly_filenames=list(directives.assembly_filenames),
        packages=list(directives.packages),
        includes=list(directives.includes),
        content="\n".join(program),
        code_map=code_map,
        filename=filename,
        namespace=namespace,
        classname=classname,
    )


__all__ = [
    "ImportDirective",
    "PreProcessResult",
    "TemplateDirectives",
    "create_template",
    "get_assembly_name",
    "parse_directives",
]
