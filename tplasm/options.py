"""Build options consumed by the macro assembler."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

LIB_PATH_ENV = "TPLASM_LIB_PATH"
DEFAULT_BIN_FOLDER = "bin"
DEFAULT_TIMEOUT = 60.0


@dataclass
class TemplateOptions:
    """Options for a top-level build invocation."""

    base_path: Path = field(default_factory=Path.cwd)
    bin_folder: Path | str = DEFAULT_BIN_FOLDER
    rebuild: bool = False
    save_generated_template: bool = False
    save_pre_generated_template: bool = False
    library_path: Optional[Path] = None
    isolated: bool = False
    timeout: Optional[float] = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        self.base_path = Path(self.base_path).resolve()
        if not str(self.bin_folder).strip():
            self.bin_folder = DEFAULT_BIN_FOLDER
        bin_folder = Path(self.bin_folder)
        if not bin_folder.is_absolute():
            bin_folder = self.base_path / bin_folder
        self.bin_folder = bin_folder
        if self.library_path is None:
            env_path = os.environ.get(LIB_PATH_ENV)
            self.library_path = Path(env_path) if env_path else self.base_path / "lib"
        self.library_path = Path(self.library_path)

    @property
    def bin_path(self) -> Path:
        return Path(self.bin_folder)

    @property
    def package_folder(self) -> Path:
        return self.bin_path / "packages"


__all__ = ["TemplateOptions", "LIB_PATH_ENV"]
