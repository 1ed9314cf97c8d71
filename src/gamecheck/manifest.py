"""Manifest I/O: read expected-files.json (comments allowed), write the actual-files snapshot."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable

from gamecheck.errors import ManifestError, ManifestFormatError, ManifestNotFoundError
from gamecheck.models import Architecture, FileFingerprint, Inventory, Manifest
from gamecheck.paths import display_order, normalize_relpath, path_key

logger = logging.getLogger(__name__)


def strip_json_comments(text: str) -> str:
    """Remove // line comments and /* */ block comments outside of strings.

    Newlines inside block comments are kept so decode errors report the
    right line.
    """
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ManifestFormatError("Unterminated block comment.", {"offset": i})
            out.append("\n" * text.count("\n", i, end))
            i = end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def load_manifest(path: str, case_insensitive: bool = False) -> Manifest:
    """Read and validate the manifest file.

    Raises ManifestNotFoundError if the file is missing and
    ManifestFormatError if it can't be parsed or lists a path twice.
    """
    if not os.path.isfile(path):
        raise ManifestNotFoundError("Can't find required file.", {"path": os.path.abspath(path)})

    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError("Can't read manifest file.", {"path": path, "error": str(e)}) from e

    try:
        data = json.loads(strip_json_comments(text))
    except json.JSONDecodeError as e:
        raise ManifestFormatError(
            "Manifest is not valid JSON.",
            {"path": path, "line": e.lineno, "column": e.colno, "error": e.msg},
        ) from e

    manifest = parse_manifest(data, case_insensitive)
    logger.debug(
        "Loaded manifest %s: %d expected files, %d ignored paths",
        path, len(manifest.expected_files), len(manifest.ignore_relative_paths),
    )
    return manifest


def parse_manifest(data: Any, case_insensitive: bool = False) -> Manifest:
    """Build a Manifest from decoded JSON. Property names match case-insensitively.

    Two ExpectedFiles keys naming the same file (after separator folding, and
    ignoring case when case_insensitive) are rejected.
    """
    if not isinstance(data, dict):
        raise ManifestFormatError("Manifest root must be an object.")

    raw_ignore = _get(data, "IgnoreRelativePaths")
    if raw_ignore is None:
        raw_ignore = []
    if not isinstance(raw_ignore, list) or not all(isinstance(p, str) for p in raw_ignore):
        raise ManifestFormatError("IgnoreRelativePaths must be a list of strings.")

    raw_files = _get(data, "ExpectedFiles")
    if not isinstance(raw_files, dict):
        raise ManifestFormatError("ExpectedFiles must be an object mapping paths to file data.")

    expected: Inventory = {}
    seen: dict[str, str] = {}
    for rel, entry in raw_files.items():
        normalized = normalize_relpath(rel)
        key = path_key(normalized, case_insensitive)
        if key in seen:
            raise ManifestFormatError(
                "ExpectedFiles lists the same file twice.", {"path": rel, "other": seen[key]}
            )
        seen[key] = rel
        expected[normalized] = parse_fingerprint(rel, entry)

    return Manifest(
        ignore_relative_paths=frozenset(normalize_relpath(p) for p in raw_ignore),
        expected_files=expected,
    )


def parse_fingerprint(rel: str, entry: Any) -> FileFingerprint:
    if not isinstance(entry, dict):
        raise ManifestFormatError("File data must be an object.", {"path": rel})

    file_hash = _get(entry, "Hash")
    if not isinstance(file_hash, str) or not file_hash:
        raise ManifestFormatError("File data needs a Hash string.", {"path": rel})

    raw_arch = _get(entry, "Architecture")
    architecture: Architecture | None = None
    if raw_arch is not None:
        if not isinstance(raw_arch, str):
            raise ManifestFormatError("Architecture must be a string.", {"path": rel})
        try:
            architecture = Architecture.parse(raw_arch)
        except ValueError as e:
            raise ManifestFormatError(str(e), {"path": rel}) from e

    version = _get(entry, "AssemblyVersion")
    if version is not None and not isinstance(version, str):
        raise ManifestFormatError("AssemblyVersion must be a string.", {"path": rel})

    return FileFingerprint(hash=file_hash.lower(), architecture=architecture, version=version)


def dump_manifest(ignore_paths: Iterable[str], files: Inventory) -> str:
    """Serialize to the manifest shape, indented, with absent fields omitted."""
    payload = {
        "IgnoreRelativePaths": sorted(ignore_paths, key=display_order),
        "ExpectedFiles": {rel: files[rel].to_dict() for rel in sorted(files, key=display_order)},
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def write_snapshot(path: str, ignore_paths: Iterable[str], actual: Inventory) -> None:
    """Persist the scanned files so they can replace expected-files.json after an update."""
    text = dump_manifest(ignore_paths, actual)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)
    logger.debug("Wrote snapshot of %d files to %s", len(actual), path)


# --- Internal helpers ---


def _get(obj: dict[str, Any], name: str) -> Any:
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if key.lower() == lowered:
            return value
    return None
