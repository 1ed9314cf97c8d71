"""Data models: Architecture, FileFingerprint, Manifest, Issue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


# Values are the .NET ProcessorArchitecture names used by existing manifests.
class Architecture(Enum):
    NONE = "None"
    MSIL = "MSIL"
    X86 = "X86"
    IA64 = "IA64"
    AMD64 = "Amd64"
    ARM = "Arm"
    ARM64 = "Arm64"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> Architecture:
        """Parse a manifest architecture tag (case-insensitive).

        Raises ValueError for unknown tags.
        """
        key = raw.strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        alias = _ALIASES.get(key)
        if alias is None:
            raise ValueError(f"Unknown processor architecture: {raw!r}")
        return alias


_ALIASES: dict[str, Architecture] = {
    "x64": Architecture.AMD64,
    "anycpu": Architecture.MSIL,
}


@dataclass(frozen=True)
class FileFingerprint:
    hash: str  # lowercase hex MD5
    architecture: Architecture | None = None
    version: str | None = None  # 4-part assembly version, e.g. "1.6.0.0"

    def to_dict(self) -> dict[str, Any]:
        """Manifest shape; absent fields are omitted rather than written as null."""
        out: dict[str, Any] = {}
        if self.architecture is not None:
            out["Architecture"] = self.architecture.value
        if self.version is not None:
            out["AssemblyVersion"] = self.version
        out["Hash"] = self.hash
        return out


Inventory = Dict[str, FileFingerprint]


@dataclass(frozen=True)
class Manifest:
    ignore_relative_paths: frozenset[str] = frozenset()
    expected_files: Inventory = field(default_factory=dict)


@dataclass(frozen=True)
class Issue:
    relative_path: str
    description: str
