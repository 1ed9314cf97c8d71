"""Inventory builder: enumerate the scan roots of a game folder and fingerprint each file."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Iterator

from gamecheck.config import SCAN_SUBDIRS
from gamecheck.errors import InventoryError, ScanCancelled
from gamecheck.models import FileFingerprint, Inventory
from gamecheck.paths import path_key, relative_to
from gamecheck.pe_reader import inspect_file

logger = logging.getLogger(__name__)

FileInspector = Callable[[str], FileFingerprint]


def iter_scan_files(root_abs: str, scan_subdirs: Iterable[str] = SCAN_SUBDIRS) -> Iterator[str]:
    """Yield the files to check: the root's own files, then everything under each scan subdir.

    Linked directories (symlinks, junctions) are followed; each real directory
    is walked once, so link cycles end. Missing subdirs contribute nothing.
    Raises OSError if a directory can't be listed.
    """
    with os.scandir(root_abs) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_file():
            yield entry.path

    visited: set[tuple[int, int]] = set()
    for sub in scan_subdirs:
        sub_abs = os.path.join(root_abs, sub)
        if os.path.isdir(sub_abs):
            logger.debug("Scanning %s", sub_abs)
            yield from _walk(sub_abs, visited)


def build_inventory(
    root: str,
    ignore_paths: Iterable[str],
    inspector: FileInspector = inspect_file,
    *,
    scan_subdirs: Iterable[str] = SCAN_SUBDIRS,
    case_insensitive: bool = os.name == "nt",
    workers: int = 1,
    cancel: threading.Event | None = None,
) -> Inventory:
    """Map each relative path under the scan roots to its fingerprint.

    Ignored paths are dropped before fingerprinting. Any I/O error aborts
    the whole build with InventoryError; there's no partial inventory.
    With workers > 1 files are fingerprinted in a thread pool, but the
    result keeps enumeration order either way.
    """
    root_abs = os.path.abspath(root)
    ignored = {path_key(p, case_insensitive) for p in ignore_paths}

    try:
        candidates = [
            (rel, full)
            for full in iter_scan_files(root_abs, scan_subdirs)
            for rel in [relative_to(full, root_abs)]
            if path_key(rel, case_insensitive) not in ignored
        ]
    except OSError as e:
        raise InventoryError("Can't list the game folder.", {"root": root_abs, "error": str(e)}) from e

    logger.debug("Fingerprinting %d files under %s (workers=%d)", len(candidates), root_abs, workers)

    def fingerprint(item: tuple[str, str]) -> FileFingerprint:
        rel, full = item
        if cancel is not None and cancel.is_set():
            raise ScanCancelled("Scan cancelled.", {"path": rel})
        try:
            return inspector(full)
        except OSError as e:
            raise InventoryError("Can't read game file.", {"path": rel, "error": str(e)}) from e

    if workers > 1:
        pool = ThreadPoolExecutor(max_workers=workers)
        try:
            fingerprints = list(pool.map(fingerprint, candidates))
        except BaseException:
            pool.shutdown(wait=True, cancel_futures=True)
            raise
        pool.shutdown()
    else:
        fingerprints = [fingerprint(item) for item in candidates]

    return {rel: fp for (rel, _), fp in zip(candidates, fingerprints)}


# --- Internal helpers ---


def _walk(current: str, visited: set[tuple[int, int]]) -> Iterator[str]:
    st = os.stat(current)
    key = (st.st_dev, st.st_ino)
    if key in visited:
        logger.debug("Skipping already scanned directory %s", current)
        return
    visited.add(key)

    with os.scandir(current) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_dir():
            yield from _walk(entry.path, visited)
        elif entry.is_file():
            yield entry.path
