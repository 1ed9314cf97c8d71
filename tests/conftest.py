"""Shared test fixtures for gamecheck tests."""

from __future__ import annotations

import os
import struct
from typing import Callable

import pytest

from gamecheck.config import Settings
from gamecheck.models import Architecture, FileFingerprint
from gamecheck.pe_reader import compute_hash

IMAGE_BASE_SECTION_RVA = 0x2000
RAW_SECTION_OFFSET = 0x200


def build_pe(
    machine: int = 0x014C,
    pe32plus: bool = False,
    cor_flags: int | None = 0x1,
    version: tuple[int, int, int, int] | None = (1, 0, 0, 0),
    extra_tables: dict[int, tuple[int, int]] | None = None,
) -> bytes:
    """Build a minimal PE image in memory.

    cor_flags=None builds a native image (no CLI header). version=None leaves
    out the Assembly table. extra_tables maps table id -> (row count, row size)
    for zero-filled rows placed before the Assembly table.
    """
    opt_size = 240 if pe32plus else 224
    opt = bytearray(opt_size)
    struct.pack_into("<H", opt, 0, 0x20B if pe32plus else 0x10B)
    count_off, dirs_off = (108, 112) if pe32plus else (92, 96)
    struct.pack_into("<I", opt, count_off, 16)

    raw = b""
    if cor_flags is not None:
        struct.pack_into("<II", opt, dirs_off + 14 * 8, IMAGE_BASE_SECTION_RVA, 72)
        metadata = _build_metadata(version, extra_tables or {})
        md_rva = IMAGE_BASE_SECTION_RVA + 72
        cor = struct.pack("<IHHIIII", 72, 2, 5, md_rva, len(metadata), cor_flags, 0) + b"\0" * 48
        raw = cor + metadata

    dos = bytearray(64)
    struct.pack_into("<H", dos, 0, 0x5A4D)
    struct.pack_into("<I", dos, 60, 64)
    file_header = struct.pack("<HHIIIHH", machine, 1, 0, 0, 0, opt_size, 0x0102)
    section = struct.pack(
        "<8sIIIIIIHHI", b".text", 0x1000, IMAGE_BASE_SECTION_RVA, max(len(raw), 1),
        RAW_SECTION_OFFSET, 0, 0, 0, 0, 0x60000020,
    )
    headers = bytes(dos) + b"PE\0\0" + file_header + bytes(opt) + section
    return headers.ljust(RAW_SECTION_OFFSET, b"\0") + raw


def _build_metadata(version: tuple[int, int, int, int] | None, extra_tables: dict[int, tuple[int, int]]) -> bytes:
    rows = {0x00: (1, 10)}  # Module: Generation + Name + 3 GUIDs, all 2-byte indexes
    rows.update(extra_tables)
    if version is not None:
        rows[0x20] = (1, 22)

    valid = 0
    for table in rows:
        valid |= 1 << table
    tables = struct.pack("<IBBBBQQ", 0, 2, 0, 0, 1, valid, 0)
    for table in sorted(rows):
        tables += struct.pack("<I", rows[table][0])
    for table in sorted(rows):
        count, size = rows[table]
        if table == 0x20:
            tables += struct.pack("<IHHHHIHHH", 0x8004, *version, 0, 0, 0, 0)
        else:
            tables += b"\0" * (count * size)

    version_str = b"v4.0.30319\0\0"
    root = struct.pack("<IHHII", 0x424A5342, 1, 1, 0, len(version_str)) + version_str + struct.pack("<HH", 0, 1)
    header_len = len(root) + 8 + 4
    return root + struct.pack("<II", header_len, len(tables)) + b"#~\0\0" + tables


def write_file(root: str, rel: str, content: bytes = b"") -> str:
    """Create a file (and its folders) under root; rel uses '/' separators."""
    full = os.path.join(root, *rel.split("/"))
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, "wb") as f:
        f.write(content)
    return full


class FakeInspector:
    """Real hashes, but architecture/version looked up by file name."""

    def __init__(self, metadata: dict[str, tuple[Architecture | None, str | None]] | None = None) -> None:
        self.metadata = metadata or {}
        self.calls: list[str] = []

    def __call__(self, path: str) -> FileFingerprint:
        self.calls.append(path)
        arch, version = self.metadata.get(os.path.basename(path), (None, None))
        return FileFingerprint(hash=compute_hash(path), architecture=arch, version=version)


class ScriptedConsole:
    """Console double: canned answers in, recorded (level, message) lines out."""

    def __init__(self, answers: list[str] | None = None) -> None:
        self.answers = list(answers or [])
        self.lines: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.lines.append(("info", message))

    def error(self, message: str) -> None:
        self.lines.append(("error", message))

    def ask(self, prompt: str = "") -> str:
        if not self.answers:
            raise EOFError("no more scripted answers")
        return self.answers.pop(0)

    def messages(self, level: str | None = None) -> list[str]:
        return [m for lvl, m in self.lines if level is None or lvl == level]


@pytest.fixture
def game_dir(tmp_path) -> str:
    """A small modern game folder with a root DLL, smapi-internal and Content files."""
    root = tmp_path / "Stardew Valley"
    root.mkdir()
    write_file(str(root), "Stardew Valley.dll", b"game")
    write_file(str(root), "StardewValley.deps.json", b"{}")
    write_file(str(root), "smapi-internal/SMAPI.Toolkit.dll", b"toolkit")
    write_file(str(root), "smapi-internal/i18n/default.json", b"{}")
    write_file(str(root), "Content/Maps/Farm.xnb", b"farm")
    write_file(str(root), "Mods/SomeMod/manifest.json", b"{}")  # outside the scan roots
    return str(root)


@pytest.fixture
def data_dir(tmp_path) -> str:
    d = tmp_path / "app"
    d.mkdir()
    return str(d)


@pytest.fixture
def settings(data_dir) -> Settings:
    return Settings(data_dir=data_dir, case_insensitive=False, pause_on_exit=False)


@pytest.fixture
def fake_inspector() -> Callable[[str], FileFingerprint]:
    return FakeInspector()
