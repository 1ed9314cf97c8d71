"""Relative path utilities: separator normalization, comparison keys, display order."""

from __future__ import annotations

import os


def normalize_relpath(path: str) -> str:
    """Fold both separator styles to '/' and drop empty or '.' components.

    "Content\\Maps/Farm.xnb" -> "Content/Maps/Farm.xnb"
    "./Stardew Valley.dll"   -> "Stardew Valley.dll"
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    return "/".join(parts)


def relative_to(full_path: str, root_abs: str) -> str:
    """Path of full_path relative to root_abs, in normalized form."""
    return normalize_relpath(os.path.relpath(full_path, root_abs))


def path_key(path: str, case_insensitive: bool) -> str:
    """Comparison key for a relative path. Windows installs compare ignoring case."""
    key = normalize_relpath(path)
    return key.casefold() if case_insensitive else key


def display_order(path: str) -> tuple[str, str]:
    """Sort key: case-insensitive ordinal order, original string as tie-break.

    Characters are upper-cased one at a time; ones whose upper case is longer
    (like "ß") are kept as is.
    """
    folded = "".join(c.upper() if len(c.upper()) == 1 else c for c in path)
    return folded, path

