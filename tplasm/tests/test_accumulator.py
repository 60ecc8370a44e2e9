from tplasm.accumulator import NEUTRAL, OutputAccumulator, SourceResult, SourceResultMap


def test_emit_records_one_entry_per_line():
    acc = OutputAccumulator()
    acc.emit("lda #1", 3, "main.tpl")
    acc.emit("sta $10", 4, "main.tpl")
    result = acc.finish()
    assert result.code == "lda #1\nsta $10\n"
    assert result.map == [SourceResultMap(3, "main.tpl"), SourceResultMap(4, "main.tpl")]


def test_multiline_emit_is_unmapped():
    acc = OutputAccumulator()
    acc.emit(".byte $01\n.byte $02", 7, "main.tpl")
    result = acc.finish()
    assert result.code.splitlines() == [".byte $01", ".byte $02"]
    assert result.map == [NEUTRAL, NEUTRAL]
    assert not any(entry.is_mapped for entry in result.map)


def test_finish_resets_state():
    acc = OutputAccumulator()
    acc.emit("nop", 1, "a.tpl")
    assert acc.line_count == 1
    acc.finish()
    assert acc.line_count == 0
    assert acc.finish() == SourceResult("", [])


def test_emit_raw_stringifies_values():
    acc = OutputAccumulator()
    acc.emit_raw(42, 2, "a.tpl")
    acc.emit_raw(None, 3, "a.tpl")
    result = acc.finish()
    assert result.code == "42\n\n"
    assert [entry.line for entry in result.map] == [2, 3]


def test_source_result_json_round_trip():
    result = SourceResult("nop\n", [SourceResultMap(5, "x.tpl")])
    payload = result.to_json()
    assert payload == {"code": "nop\n", "map": [[5, "x.tpl"]]}
    assert SourceResult.from_json(payload) == result
