import textwrap

import pytest

from tplasm import csasm
from tplasm.accumulator import NEUTRAL, SourceResult, SourceResultMap


def _mapped(code: str) -> SourceResult:
    lines = code.split("\n")
    if code.endswith("\n"):
        lines = lines[:-1]
    return SourceResult(code, [SourceResultMap(index + 1, "f.tpl") for index in range(len(lines))])


@pytest.mark.parametrize(
    "code",
    [
        "",
        "nop",
        "nop\n",
        ".proc main\nlda #1\n.endproc\n",
        ".endscope\n.endscope\nnop\n",
        ".loop:\nbne .loop\n\n\n",
        ".scope\n.proc a\n.inner:\nrts\n.endproc\n.endscope",
    ],
)
def test_map_length_matches_line_count(code):
    result = csasm.beautify(_mapped(code))
    assert len(result.map) == len(result.code.splitlines())


def test_proc_is_indented_and_spaced():
    result = csasm.beautify(_mapped(".proc main\nlda #1\n.endproc\n"))
    assert result.code == "\n.proc main\n\tlda #1\n.endproc\n\n\n"
    assert [entry.line for entry in result.map] == [0, 1, 2, 3, 0, 0]
    assert result.map[0] == NEUTRAL


def test_unmatched_close_never_goes_negative():
    result = csasm.beautify(_mapped(".endscope\n.endscope\nnop\n"))
    assert "nop" in result.code.splitlines()
    assert not any(line.startswith("\t") for line in result.code.splitlines())


def test_nested_scopes_indent_by_depth():
    source = textwrap.dedent(
        """\
        .scope
        .scope
        nop
        .endscope
        .endscope
        """
    )
    lines = csasm.beautify(_mapped(source)).code.splitlines()
    assert "\t\tnop" in lines
    assert "\t.scope" in lines


def test_label_gets_blank_line_and_keeps_mapping():
    result = csasm.beautify(_mapped("nop\n.loop:\nbne .loop\n"))
    lines = result.code.splitlines()
    assert lines[:4] == ["nop", "", ".loop:", "bne .loop"]
    assert result.map[2] == SourceResultMap(2, "f.tpl")
    assert result.map[3] == SourceResultMap(3, "f.tpl")


def test_last_entry_is_neutral():
    result = csasm.beautify(_mapped("nop\n"))
    assert result.map[-1] == NEUTRAL
    assert result.map[0] == SourceResultMap(1, "f.tpl")
