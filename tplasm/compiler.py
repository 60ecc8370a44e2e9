"""Compiles generated programs into cached binaries and reports mapped diagnostics."""

from __future__ import annotations

import ast
import builtins
import importlib.util
import marshal
import struct
import zlib
from dataclasses import dataclass
from types import CodeType
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .assembler import PreProcessResult
from .errors import CompilationError, TemplateCompilationError

MAGIC = b"TPLC"
FORMAT_VERSION = 0x0001
HEADER = struct.Struct(">4sHH4sII")
BINARY_SUFFIX = ".tpc"

# names the executor places in every loaded unit's globals
RUNTIME_GLOBALS = frozenset({"emit", "emit_raw", "registry"})

_BUILTIN_NAMES = frozenset(dir(builtins))
TYPE_PARAMS = frozenset({"TypeVar", "ParamSpec", "TypeVarTuple"})


@dataclass
class IncludeSource:
    """Raw Python merged into a unit at compile time."""

    path: str
    text: str


@dataclass
class CompiledUnit:
    filename: str
    code: CodeType


def pack_binary(units: Sequence[CompiledUnit]) -> bytes:
    payload = marshal.dumps(tuple((unit.filename, unit.code) for unit in units))
    crc = zlib.crc32(payload) & 0xFFFFFFFF
    header = HEADER.pack(MAGIC, FORMAT_VERSION, 0, importlib.util.MAGIC_NUMBER[:4], len(payload), crc)
    return header + payload


def unpack_binary(data: bytes) -> List[CompiledUnit]:
    if len(data) < HEADER.size:
        raise ValueError("binary too small")
    magic, version, _flags, interpreter, length, crc = HEADER.unpack_from(data)
    if magic != MAGIC:
        raise ValueError(f"Bad magic {magic!r}")
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported binary version 0x{version:04X}")
    if interpreter != importlib.util.MAGIC_NUMBER[:4]:
        raise ValueError("binary was compiled by a different interpreter")
    payload = data[HEADER.size:]
    if len(payload) != length:
        raise ValueError(f"Truncated binary: expected {length} bytes, found {len(payload)}")
    calc = zlib.crc32(payload) & 0xFFFFFFFF
    if calc != crc:
        raise ValueError(f"CRC mismatch: file=0x{crc:08X} calc=0x{calc:08X}")
    return [CompiledUnit(filename, code) for filename, code in marshal.loads(payload)]


def is_loadable(data: bytes) -> bool:
    try:
        unpack_binary(data)
    except ValueError:
        return False
    return True


def _match_binding(node: ast.AST) -> Optional[str]:
    # TypeVar / ParamSpec / TypeVarTuple are the type parameters of generics
    if type(node).__name__ in TYPE_PARAMS:
        return node.name
    # MatchAs / MatchStar / MatchMapping bind via ``name`` or ``rest``
    if type(node).__name__.startswith("Match"):
        for attr in ("name", "rest"):
            value = getattr(node, attr, None)
            if isinstance(value, str):
                return value
    return None


def bound_names(tree: ast.AST) -> Tuple[Set[str], bool]:
    """Names bound anywhere in ``tree``; the flag is set when a star import hides bindings."""
    names: Set[str] = set()
    star = False
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            names.add(node.id)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.arg):
            names.add(node.arg)
        elif isinstance(node, ast.alias):
            if node.name == "*":
                star = True
            else:
                names.add((node.asname or node.name).split(".")[0])
        elif isinstance(node, ast.ExceptHandler) and node.name:
            names.add(node.name)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            names.update(node.names)
        else:
            binding = _match_binding(node)
            if binding:
                names.add(binding)
    return names, star


def unresolved_names(tree: ast.AST, known: Iterable[str]) -> List[Tuple[int, str]]:
    """``(line, name)`` for every loaded name nothing in scope can provide."""
    defined, star = bound_names(tree)
    if star:
        return []
    available = defined | set(known) | _BUILTIN_NAMES | RUNTIME_GLOBALS
    seen: Set[Tuple[int, str]] = set()
    missing: List[Tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            if node.id in available or node.id.startswith("__"):
                continue
            key = (node.lineno, node.id)
            if key not in seen:
                seen.add(key)
                missing.append(key)
    return sorted(missing)


def _syntax_error(exc: SyntaxError, pre: Optional[PreProcessResult], filename: str) -> CompilationError:
    generated = exc.lineno or -1
    if pre is not None:
        return CompilationError(exc.msg, line=pre.original_line(generated), filename=pre.filename, generated_line=generated)
    return CompilationError(exc.msg, line=generated, filename=filename, generated_line=-1)


def compile_template(
    pre: PreProcessResult,
    includes: Sequence[IncludeSource] = (),
    known_names: Iterable[str] = (),
    *,
    program_filename: Optional[str] = None,
) -> bytes:
    """Compile ``pre`` and its include files into one binary.

    Raises ``TemplateCompilationError`` carrying every diagnostic, each mapped
    back to the original file and line where possible.
    """
    program_filename = program_filename or f"{pre.filename}.py"
    errors: List[CompilationError] = []
    units: List[CompiledUnit] = []
    known = set(known_names)

    for include in includes:
        try:
            tree = ast.parse(include.text, filename=include.path)
            units.append(CompiledUnit(include.path, compile(tree, include.path, "exec")))
        except SyntaxError as exc:
            errors.append(_syntax_error(exc, None, include.path))
            continue
        names, _ = bound_names(tree)
        known.update(names)

    try:
        tree = ast.parse(pre.content, filename=program_filename)
    except SyntaxError as exc:
        errors.append(_syntax_error(exc, pre, program_filename))
        tree = None

    if tree is not None:
        for generated, name in unresolved_names(tree, known):
            errors.append(
                CompilationError(
                    f"name '{name}' is not defined",
                    line=pre.original_line(generated),
                    filename=pre.filename,
                    generated_line=generated,
                )
            )

        try:
            units.append(CompiledUnit(program_filename, compile(tree, program_filename, "exec")))
        except SyntaxError as exc:
            # e.g. 'return' outside function, only caught by the code generator
            errors.append(_syntax_error(exc, pre, program_filename))

    if errors:
        raise TemplateCompilationError(errors, filename=pre.filename, generated_code=pre.content)

    return pack_binary(units)


__all__ = [
    "BINARY_SUFFIX",
    "CompiledUnit",
    "IncludeSource",
    "RUNTIME_GLOBALS",
    "bound_names",
    "compile_template",
    "is_loadable",
    "pack_binary",
    "unpack_binary",
    "unresolved_names",
]
