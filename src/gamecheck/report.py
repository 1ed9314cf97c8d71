"""Report formatting: aligned text tables for the console. No I/O here."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from gamecheck.models import Architecture
from gamecheck.reconcile import ISSUE_SEPARATOR

RULE = "-" * 49


@dataclass
class ReportSection:
    title: str
    ok: bool | None  # False: lines describe problems. None: neutral info.
    lines: list[str] = field(default_factory=list)


def render(section: ReportSection) -> list[str]:
    """Title, underline, then the body lines."""
    return [section.title, RULE, *section.lines]


def format_system_info(info: Mapping[str, object]) -> ReportSection:
    return ReportSection("System info", ok=None, lines=[f"{k}: {v}" for k, v in info.items()])


def format_legacy_files(matches: list[tuple[str, Architecture]]) -> ReportSection:
    """Table of 32-bit files, or a confirmation line if there are none."""
    if not matches:
        return ReportSection("32-bit files", ok=True, lines=["No 32-bit files found."])

    name_width = max(len(rel) for rel, _ in matches)
    arch_width = len("Architecture")

    lines = [
        f"Found {len(matches)} files which are 32-bit. Is this Stardew Valley 1.5.4 or earlier?",
        "    " + "Name".ljust(name_width) + " | Architecture",
        "    " + "----".ljust(name_width, "-") + " | " + "-" * arch_width,
    ]
    for rel, arch in matches:
        lines.append(f"    {rel.ljust(name_width)} | {str(arch).ljust(arch_width)}")
    return ReportSection("32-bit files", ok=False, lines=lines)


def format_integrity(rows: list[tuple[str, list[str]]]) -> ReportSection:
    """Table of per-path issues (already grouped and ordered), or a confirmation line.

    Column widths come from the longest path and the longest joined issue text.
    """
    if not rows:
        return ReportSection("File integrity", ok=True, lines=["No file issues detected."])

    joined = [(rel, ISSUE_SEPARATOR.join(descriptions)) for rel, descriptions in rows]
    name_width = max(len(rel) for rel, _ in joined)
    issue_width = max(len(text) for _, text in joined)

    lines = [
        "   " + "file".ljust(name_width) + " | " + "issues".ljust(issue_width),
        "   " + "".ljust(name_width, "-") + " | " + "".ljust(issue_width, "-"),
    ]
    for rel, text in joined:
        lines.append("   " + rel.ljust(name_width) + " | " + text.ljust(issue_width))
    return ReportSection("File integrity", ok=False, lines=lines)
