"""
Pytest fixtures for tplasm tests.
"""
import textwrap
from pathlib import Path

import pytest

from tplasm.build import MacroAssembler
from tplasm.options import LIB_PATH_ENV, TemplateOptions


@pytest.fixture(autouse=True)
def _no_library_env(monkeypatch):
    monkeypatch.delenv(LIB_PATH_ENV, raising=False)


@pytest.fixture
def write(tmp_path):
    """Write dedented template text below tmp_path and return its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def build(tmp_path):
    """Run a full build of ``path`` with options rooted at tmp_path."""

    def _build(path, **overrides):
        options = TemplateOptions(base_path=tmp_path, **overrides)
        assembler = MacroAssembler(options)
        result = assembler.process_file(path)
        return assembler, result

    return _build
