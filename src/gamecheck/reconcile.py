"""Reconciler: compare expected vs. actual inventories and list per-path issues."""

from __future__ import annotations

import os
from typing import Any

from gamecheck.models import FileFingerprint, Inventory, Issue
from gamecheck.paths import display_order, path_key

MISSING_FILE = "missing file"
UNEXPECTED_FILE = "unexpected file"
ISSUE_SEPARATOR = "; "


def _show(value: Any) -> str:
    return "null" if value is None else str(value)


def compare_fingerprints(found: FileFingerprint, expected: FileFingerprint) -> list[str]:
    """All field mismatches for one path, in architecture, version, hash order."""
    problems: list[str] = []

    if found.architecture != expected.architecture:
        problems.append(
            f"wrong processor architecture (found {_show(found.architecture)}, "
            f"expected {_show(expected.architecture)})"
        )

    if found.version != expected.version:
        problems.append(f"wrong version (found {_show(found.version)}, expected {_show(expected.version)})")

    if found.hash != expected.hash:
        problems.append(f"modified file (file hash is {found.hash}, expected {expected.hash})")

    return problems


def reconcile(
    expected: Inventory,
    actual: Inventory,
    case_insensitive: bool = os.name == "nt",
) -> list[Issue]:
    """Diff two inventories.

    1. Expected paths not on disk -> "missing file".
    2. Paths on disk not expected -> "unexpected file", nothing else checked.
    3. Paths in both -> one issue per differing field.

    Issues are ordered by path (case-insensitive); issues for the same path
    keep their detection order.
    """
    expected_by_key = {path_key(p, case_insensitive): p for p in expected}
    actual_keys = {path_key(p, case_insensitive) for p in actual}
    issues: list[Issue] = []

    for key, rel in expected_by_key.items():
        if key not in actual_keys:
            issues.append(Issue(rel, MISSING_FILE))

    for rel, found in actual.items():
        expected_rel = expected_by_key.get(path_key(rel, case_insensitive))
        if expected_rel is None:
            issues.append(Issue(rel, UNEXPECTED_FILE))
            continue
        for problem in compare_fingerprints(found, expected[expected_rel]):
            issues.append(Issue(rel, problem))

    issues.sort(key=lambda issue: display_order(issue.relative_path))
    return issues


def group_issues(issues: list[Issue]) -> list[tuple[str, list[str]]]:
    """Collapse an ordered issue list into (path, [descriptions]) rows."""
    rows: list[tuple[str, list[str]]] = []
    for issue in issues:
        if rows and rows[-1][0] == issue.relative_path:
            rows[-1][1].append(issue.description)
        else:
            rows.append((issue.relative_path, [issue.description]))
    return rows
