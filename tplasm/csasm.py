"""The ``csasm`` dialect: 6502/65C02 assembly with embedded Python."""

from __future__ import annotations

import re

from .accumulator import SourceResult
from .beautifier import Beautifier
from .dialect import Dialect, TemplateEngine

MNEMONICS_6502 = (
    "adc and asl bcc bcs beq bit bmi bne bpl brk bvc bvs clc cld cli clv cmp cpx cpy "
    "dec dex dey eor inc inx iny jmp jsr lda ldx ldy lsr nop ora pha php pla plp rol "
    "ror rti rts sbc sec sed sei sta stx sty stp tax tay tsx txa txs tya"
).split()

MNEMONICS_65C02 = (
    "bra phx phy plx ply stz trb tsb "
    + " ".join(f"bbr{i} bbs{i} rmb{i} smb{i}" for i in range(8))
    + " wai ldd"
).split()

# an assignment such as ``inc = 1`` or ``dec += 2`` is Python, not an instruction
_NOT_ASSIGNMENT = r"(?![ \t]*[-+*/%&|^]?=(?!=))"


def _mnemonic_pattern(mnemonics) -> "re.Pattern[str]":
    alternatives = "|".join(sorted(mnemonics, key=len, reverse=True))
    return re.compile(rf"^\s*(?P<line>(?i:(?:{alternatives})){_NOT_ASSIGNMENT}(?:\s+.*|))$")


LINE_PATTERNS = [
    _mnemonic_pattern(MNEMONICS_6502),
    _mnemonic_pattern(MNEMONICS_65C02),
    # directives, labels and comments: anything starting with '.' or ';'
    re.compile(r"^\s*(?P<line>[.;].*)$"),
]

BEAUTIFIER = Beautifier(
    open_keywords=(".scope", ".proc"),
    close_keywords=(".endscope", ".endproc"),
    label_pattern=re.compile(r"^(\.[\w\-]+:)"),
)


def beautify(source: SourceResult) -> SourceResult:
    return BEAUTIFIER.beautify(source)


def create_dialect() -> Dialect:
    return Dialect(
        name="csasm",
        line_patterns=list(LINE_PATTERNS),
        inline_marker="@",
        raw_prefix="=",
        comment_marker="//",
        namespaces=["from tplasm import helpers as BM"],
        beautify=beautify,
    )


def create_engine() -> TemplateEngine:
    return TemplateEngine(create_dialect())


__all__ = ["LINE_PATTERNS", "beautify", "create_dialect", "create_engine"]
