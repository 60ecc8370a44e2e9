"""Formatting helpers exposed to templates as ``BM``.

Each helper returns assembly text; emit it from a template with a raw value
line, e.g. ``=BM.x16_header()``.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List

# BASIC stub "10 SYS 2064" loaded at $0801, code starts at $0810
X16_HEADER = (0x0C, 0x08, 0x0A, 0x00, 0x9E, 0x20, 0x32, 0x30, 0x36, 0x34, 0x00, 0x00, 0x00, 0x00, 0x00)


def _rows(directive: str, values: List[str], width: int) -> str:
    if width <= 0:
        raise ValueError("width must be positive")
    rows = []
    for start in range(0, len(values), width):
        rows.append(f"{directive}\t" + ", ".join(values[start:start + width]))
    return "\n".join(rows)


def hex_bytes(values: Iterable[int] | str | bytes, width: int = 16) -> str:
    """Format values as ``.byte`` rows, ``width`` values per row."""
    if isinstance(values, str):
        values = [ord(ch) for ch in values]
    return _rows(".byte", [f"${int(value) & 0xFF:02X}" for value in values], width)


def hex_words(values: Iterable[int], width: int = 16) -> str:
    """Format values as ``.word`` rows, ``width`` values per row."""
    return _rows(".word", [f"${int(value) & 0xFFFF:04X}" for value in values], width)


def x16_header() -> str:
    return hex_bytes(X16_HEADER)


def string_to_petscii(text: str, terminate: bool = True) -> Iterator[int]:
    for ch in text:
        yield ord(ch) & 0xFF
    if terminate:
        yield 0x00


def iso_string_to_petscii(text: str, terminate: bool = True) -> Iterator[int]:
    for ch in text:
        value = ord(ch) & 0xFF
        if 0x40 <= value < 0x60:
            value -= 0x40
        yield value
    if terminate:
        yield 0x00


def petscii(text: str, terminate: bool = True) -> str:
    return hex_bytes(string_to_petscii(text, terminate))


def iso_petscii(text: str, terminate: bool = True) -> str:
    return hex_bytes(iso_string_to_petscii(text, terminate))


__all__ = [
    "X16_HEADER",
    "hex_bytes",
    "hex_words",
    "iso_petscii",
    "iso_string_to_petscii",
    "petscii",
    "string_to_petscii",
    "x16_header",
]
