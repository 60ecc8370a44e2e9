import logging

import pytest

from tplasm.build import MacroAssembler
from tplasm.errors import BuildStateError, ImportNotFoundError, TemplateCompilationError, TemplateSyntaxError
from tplasm.options import TemplateOptions
from tplasm.source import normalize_path


def test_fixed_byte_header(write, build):
    src = write("header.tpl", "=BM.x16_header()\n")
    _, result = build(src)

    lines = [line for line in result.code.splitlines() if line.strip()]
    assert len(lines) == 1
    directive, values = lines[0].split("\t", 1)
    assert directive == ".byte"
    assert len(values.split(", ")) == 15
    assert values.startswith("$0C, $08, $0A, $00, $9E")

    mapped = [entry for entry in result.source.map if entry.is_mapped]
    assert len(mapped) == 1
    assert mapped[0].line == 1
    origin, line = result.resolve_line(result.content.index(lines[0]))
    assert origin.path == normalize_path(src)
    assert line == 1


def test_loop_maps_every_line_to_loop_body(write, build):
    src = write(
        "loop.tpl",
        """\
        for i in range(1, 11):
            lda #@(i)
        """,
    )
    _, result = build(src)

    lines = result.code.splitlines()
    assert lines[:10] == [f"lda #{i}" for i in range(1, 11)]
    assert [entry.line for entry in result.source.map[:10]] == [2] * 10
    for index in range(10):
        assert result.resolve_line(index)[1] == 2


def test_library_is_built_before_importer(write, build, tmp_path, caplog):
    lib = write(
        "lib.tpl",
        """\
        library "Demo.Lib";

        def border(self, colour):
            lda #@(colour)
            sta $9F2C
        """,
    )
    src = write(
        "main.tpl",
        """\
        import lib = "lib.tpl";

        lib.border(5)
        """,
    )
    caplog.set_level(logging.INFO, logger="tplasm.build")
    assembler, result = build(src, save_pre_generated_template=True)

    building = [record.getMessage() for record in caplog.records if "Building binary" in record.getMessage()]
    assert len(building) == 2
    assert "Demo.tpc" in building[0]
    assert "app.main.tpc" in building[1]

    program = (tmp_path / "bin" / "app.main.generated.py").read_text(encoding="utf-8")
    assert program.count("lib = registry.create('Demo.Lib')") == 1
    assert program.count("lib.initialise()") == 1

    assert result.code.splitlines()[:2] == ["lda #5", "sta $9F2C"]
    origin, line = result.resolve_line(0)
    assert origin.path == normalize_path(lib)
    assert line == 4
    assert assembler.state.filename_to_classname[normalize_path(lib)] == "Demo.Lib"
    assert [ref.qualified_name for ref in result.references] == ["Demo.Lib"]


def test_missing_import_is_a_compile_error(write, build):
    write("lib.tpl", 'library "Demo.Lib";\n\ndef border(self, colour):\n    lda #@(colour)\n')
    src = write("main.tpl", "\nlib.border(5)\n")
    with pytest.raises(TemplateCompilationError) as excinfo:
        build(src)
    error = excinfo.value.first()
    assert error.message == "name 'lib' is not defined"
    assert error.line == 2
    assert error.filename == normalize_path(src)


def test_import_not_found_lists_searched_paths(write, build, tmp_path):
    src = write("main.tpl", 'import lib = "nowhere.tpl";\n')
    with pytest.raises(ImportNotFoundError) as excinfo:
        build(src)
    assert excinfo.value.requested == "nowhere.tpl"
    assert (tmp_path.resolve() / "nowhere.tpl").as_posix() in excinfo.value.searched
    assert (tmp_path.resolve() / "lib" / "nowhere.tpl").as_posix() in excinfo.value.searched


def test_import_found_in_library_root(write, build, tmp_path):
    write("shared/colours.tpl", "def black(self):\n    lda #0\n")
    src = write("src/main.tpl", 'import colours = "colours.tpl";\ncolours.black()\n')
    _, result = build(src, library_path=tmp_path / "shared")
    assert result.code.splitlines()[0] == "lda #0"


def test_diamond_imports_build_each_unit_once(write, build, caplog):
    write("c.tpl", 'library "Shared.C";\ndef value(self):\n    return 3\n')
    write("a.tpl", 'library "PartA.A";\nimport c = "c.tpl";\n')
    write("b.tpl", 'library "PartB.B";\nimport c = "c.tpl";\n')
    src = write(
        "main.tpl",
        """\
        import a = "a.tpl";
        import b = "b.tpl";
        import c = "c.tpl";
        lda #@(c.value())
        """,
    )
    caplog.set_level(logging.INFO, logger="tplasm.build")
    assembler, result = build(src)
    built = [record.getMessage() for record in caplog.records if "Building binary" in record.getMessage()]
    assert len(built) == 4
    assert "Shared.tpc" in built[0]
    assert result.code.splitlines()[0] == "lda #3"
    assert [ref.qualified_name for ref in result.references] == ["Shared.C", "PartA.A", "PartB.B"]
    part_a = result.references[1]
    assert [ref.qualified_name for ref in part_a.references] == ["Shared.C"]


def test_libraries_sharing_a_binary_are_rejected(write, build):
    write("a.tpl", 'library "Lib.A";\n')
    write("b.tpl", 'library "Lib.B";\n')
    src = write("main.tpl", 'import a = "a.tpl";\nimport b = "b.tpl";\n')
    with pytest.raises(BuildStateError, match="both write 'Lib.tpc'"):
        build(src)


def test_import_cycle_is_rejected(write, build):
    write("a.tpl", 'import b = "b.tpl";\n')
    write("b.tpl", 'import a = "a.tpl";\n')
    src = write("main.tpl", 'import a = "a.tpl";\n')
    with pytest.raises(TemplateSyntaxError, match="Circular import"):
        build(src)


def test_scopes_are_beautified(write, build):
    src = write(
        "proc.tpl",
        """\
        .proc main
        ldx #@(2 * 2)
        .loop:
        dex
        bne .loop
        rts
        .endproc
        """,
    )
    _, result = build(src)
    lines = result.code.splitlines()
    assert "\tldx #4" in lines
    assert lines[lines.index("\t.loop:") - 1] == ""
    assert len(result.source.map) == len(lines)
    assert len(result.parent_map) == len(lines)


def test_in_memory_template(tmp_path):
    assembler = MacroAssembler(TemplateOptions(base_path=tmp_path))
    result = assembler.process_text("nop\nnop\n", name="inline.tpl")
    assert result.code.splitlines()[:2] == ["nop", "nop"]
    origin, line = result.resolve_line(1)
    assert origin.path == "inline.tpl"
    assert line == 2
