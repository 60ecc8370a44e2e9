"""Sidecar manifest recording what a cached binary needs at run time."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

MANIFEST_SUFFIX = ".deps.json"
MANIFEST_VERSION = 1


def manifest_path(binary_path: Path | str) -> Path:
    binary_path = Path(binary_path)
    return binary_path.with_name(binary_path.name + MANIFEST_SUFFIX)


def _merge(target: List[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


@dataclass
class DependencyManifest:
    """References and binaries required to use a binary without rebuilding its source."""

    references: List[str] = field(default_factory=list)
    assembly_filenames: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    binaries: List[str] = field(default_factory=list)

    def to_json(self) -> dict:
        return {
            "version": MANIFEST_VERSION,
            "references": list(self.references),
            "assembly_filenames": list(self.assembly_filenames),
            "packages": list(self.packages),
            "binaries": list(self.binaries),
        }

    @classmethod
    def from_json(cls, payload: dict) -> "DependencyManifest":
        return cls(
            references=[str(v) for v in payload.get("references", [])],
            assembly_filenames=[str(v) for v in payload.get("assembly_filenames", [])],
            packages=[str(v) for v in payload.get("packages", [])],
            binaries=[str(v) for v in payload.get("binaries", [])],
        )

    def merge(self, other: "DependencyManifest") -> None:
        _merge(self.references, other.references)
        _merge(self.assembly_filenames, other.assembly_filenames)
        _merge(self.packages, other.packages)
        _merge(self.binaries, other.binaries)

    def save(self, binary_path: Path | str) -> Path:
        path = manifest_path(binary_path)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(self.to_json(), indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(path)
        return path

    @classmethod
    def load(cls, binary_path: Path | str) -> "DependencyManifest":
        """Read the manifest beside ``binary_path``; a missing file means no dependencies."""
        path = manifest_path(binary_path)
        if not path.exists():
            return cls()
        return cls.from_json(json.loads(path.read_text(encoding="utf-8")))


__all__ = ["DependencyManifest", "MANIFEST_SUFFIX", "manifest_path"]
