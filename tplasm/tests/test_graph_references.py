import subprocess
import sys
from pathlib import Path

import pytest

from tplasm import packages as packages_mod
from tplasm.errors import ImportNotFoundError, PackageResolutionError, TemplateSyntaxError
from tplasm.graph import DependencyGraph
from tplasm.manifest import DependencyManifest, manifest_path
from tplasm.options import LIB_PATH_ENV, TemplateOptions
from tplasm.packages import PipPackageResolver, loadable_modules
from tplasm.references import candidate_paths, check_reference, load_file_module, load_package_module, resolve_file
from tplasm.source import SourceUnit, normalize_path


def test_graph_orders_imports_before_importers(write, tmp_path):
    write("c.tpl", "nop\n")
    write("a.tpl", 'import c = "c.tpl";\n')
    write("b.tpl", 'import c = "c.tpl";\n')
    main = write("main.tpl", 'import a = "a.tpl";\nimport b = "b.tpl";\n')

    graph = DependencyGraph(SourceUnit.from_file(main), TemplateOptions(base_path=tmp_path))
    order = [Path(node.path).name for node in graph.build_order()]
    assert order == ["c.tpl", "a.tpl", "b.tpl", "main.tpl"]
    assert [Path(node.path).name for node in graph.libraries()] == ["c.tpl", "a.tpl", "b.tpl"]
    assert graph.get(normalize_path(tmp_path / "c.tpl")).depth == 2
    assert graph.root.import_paths() == {
        "a.tpl": normalize_path(tmp_path / "a.tpl"),
        "b.tpl": normalize_path(tmp_path / "b.tpl"),
    }


def test_graph_cycle_names_the_files(write, tmp_path):
    write("a.tpl", 'import b = "b.tpl";\n')
    write("b.tpl", '\nimport a = "a.tpl";\n')
    with pytest.raises(TemplateSyntaxError) as excinfo:
        DependencyGraph(SourceUnit.from_file(tmp_path / "a.tpl"), TemplateOptions(base_path=tmp_path))
    err = excinfo.value
    assert "a.tpl -> " in str(err)
    assert err.kind == "import"
    assert err.line_number == 2
    assert err.filename == normalize_path(tmp_path / "b.tpl")


def test_candidate_paths_search_order(tmp_path):
    options = TemplateOptions(base_path=tmp_path / "base", library_path=tmp_path / "lib")
    source = SourceUnit(path=(tmp_path / "src" / "main.tpl").as_posix())
    assert candidate_paths("x.tpl", source, options) == [
        tmp_path / "src" / "x.tpl",
        (tmp_path / "base").resolve() / "x.tpl",
        tmp_path / "lib" / "x.tpl",
    ]
    absolute = (tmp_path / "abs.tpl").as_posix()
    assert candidate_paths(absolute, source, options) == [Path(absolute)]


def test_virtual_units_search_base_and_library(write, tmp_path):
    write("lib/defs.py", "X = 1\n")
    options = TemplateOptions(base_path=tmp_path)
    virtual = SourceUnit.from_text("inline.tpl", "nop\n")
    assert resolve_file("defs.py", virtual, options) == normalize_path(tmp_path / "lib" / "defs.py")
    with pytest.raises(ImportNotFoundError) as excinfo:
        resolve_file("missing.py", virtual, options)
    assert len(excinfo.value.searched) == 2
    assert "missing.py" in str(excinfo.value)


def test_library_path_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv(LIB_PATH_ENV, str(tmp_path / "shared"))
    assert TemplateOptions(base_path=tmp_path).library_path == tmp_path / "shared"


def test_check_reference():
    check_reference("json")
    with pytest.raises(ImportNotFoundError):
        check_reference("tplasm_no_such_module_here", "main.tpl")


def test_load_file_module(write):
    module = load_file_module(write("tools.py", "def double(x):\n    return x * 2\n"))
    assert module.__name__ == "tools"
    assert module.double(3) == 6


def test_manifest_round_trip_and_merge(tmp_path):
    binary = tmp_path / "app.main.tpc"
    manifest = DependencyManifest(references=["string"], binaries=["/bin/Demo.tpc"])
    manifest.merge(DependencyManifest(references=["string", "json"], packages=["/bin/packages/x.py"]))
    assert manifest.references == ["string", "json"]

    manifest.save(binary)
    assert manifest_path(binary).exists()
    assert not (tmp_path / "app.main.tpc.deps.tmp").exists()
    assert DependencyManifest.load(binary) == manifest
    assert DependencyManifest.load(tmp_path / "other.tpc") == DependencyManifest()


def test_loadable_modules(tmp_path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "__init__.py").write_text("", encoding="utf-8")
    (tmp_path / "single.py").write_text("", encoding="utf-8")
    (tmp_path / "single-1.0.dist-info").mkdir()
    (tmp_path / "__pycache__").mkdir()
    assert [path.name for path in loadable_modules(tmp_path)] == ["pkg", "single.py"]


def test_pip_resolver_installs_into_target(monkeypatch, tmp_path):
    seen = {}

    def fake_run(cmd, capture_output, text, timeout):
        seen["cmd"] = cmd
        target = Path(cmd[cmd.index("--target") + 1])
        (target / "demo.py").write_text("", encoding="utf-8")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(packages_mod.subprocess, "run", fake_run)
    modules = PipPackageResolver(timeout=5).resolve("demo", "1.2", tmp_path / "packages")
    assert [path.name for path in modules] == ["demo.py"]
    assert seen["cmd"][0] == sys.executable
    assert seen["cmd"][-1] == "demo==1.2"


def test_pip_resolver_failure(monkeypatch, tmp_path):
    def fake_run(cmd, capture_output, text, timeout):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="No matching distribution found")

    monkeypatch.setattr(packages_mod.subprocess, "run", fake_run)
    with pytest.raises(PackageResolutionError, match="No matching distribution"):
        PipPackageResolver().resolve("demo", None, tmp_path)


def test_package_module_reloads_from_new_target(tmp_path, monkeypatch):
    old = tmp_path / "v1" / "tplasm_pkgdemo.py"
    new = tmp_path / "v2" / "tplasm_pkgdemo.py"
    for path, value in ((old, 1), (new, 2)):
        path.parent.mkdir()
        path.write_text(f"VALUE = {value}\n", encoding="utf-8")
    monkeypatch.delitem(sys.modules, "tplasm_pkgdemo", raising=False)
    before = list(sys.path)

    assert load_package_module(old).VALUE == 1
    assert load_package_module(old) is sys.modules["tplasm_pkgdemo"]
    assert load_package_module(new).VALUE == 2
    assert sys.path == before
    sys.modules.pop("tplasm_pkgdemo", None)
