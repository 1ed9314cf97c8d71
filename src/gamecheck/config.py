"""Configuration: data directory, scan roots, worker count, console behavior."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from gamecheck.errors import ConfigError

MANIFEST_FILE_NAME = "expected-files.json"
SNAPSHOT_FILE_NAME = "actual-files.json"
SCAN_SUBDIRS: tuple[str, ...] = ("smapi-internal", "Content")
HASH_CHUNK_SIZE = 1024 * 1024

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    data_dir: str  # holds expected-files.json, receives actual-files.json
    workers: int = 1
    case_insensitive: bool = os.name == "nt"
    scan_subdirs: tuple[str, ...] = SCAN_SUBDIRS
    extra_game_paths: tuple[str, ...] = ()
    pause_on_exit: bool = True
    log_level: int = logging.WARNING

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.data_dir, MANIFEST_FILE_NAME)

    @property
    def snapshot_path(self) -> str:
        return os.path.join(self.data_dir, SNAPSHOT_FILE_NAME)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean (1/0, true/false, yes/no).", {"value": raw})


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build settings from GAMECHECK_* environment variables.

    GAMECHECK_DATA_DIR          folder with the manifest (default: cwd)
    GAMECHECK_WORKERS           fingerprinting threads, >= 1 (default: 1)
    GAMECHECK_CASE_INSENSITIVE  compare paths ignoring case (default: on Windows)
    GAMECHECK_GAME_PATHS        extra install folder candidates, os.pathsep separated
    GAMECHECK_NO_PAUSE          don't wait for enter before exiting
    GAMECHECK_LOG_LEVEL         logging level name (default: WARNING)
    """
    env = os.environ if environ is None else environ

    data_dir = os.path.abspath(env.get("GAMECHECK_DATA_DIR", "") or os.getcwd())
    if not os.path.isdir(data_dir):
        raise ConfigError("GAMECHECK_DATA_DIR does not exist or is not a directory.", {"path": data_dir})

    raw_workers = env.get("GAMECHECK_WORKERS", "1").strip() or "1"
    try:
        workers = int(raw_workers)
    except ValueError:
        raise ConfigError("GAMECHECK_WORKERS must be an integer.", {"value": raw_workers}) from None
    if workers < 1:
        raise ConfigError("GAMECHECK_WORKERS must be at least 1.", {"value": workers})

    raw_case = env.get("GAMECHECK_CASE_INSENSITIVE", "")
    case_insensitive = _parse_bool("GAMECHECK_CASE_INSENSITIVE", raw_case) if raw_case else os.name == "nt"

    extra_paths = tuple(
        p.strip() for p in env.get("GAMECHECK_GAME_PATHS", "").split(os.pathsep) if p.strip()
    )

    raw_pause = env.get("GAMECHECK_NO_PAUSE", "")
    pause_on_exit = not _parse_bool("GAMECHECK_NO_PAUSE", raw_pause) if raw_pause else True

    level_name = env.get("GAMECHECK_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise ConfigError("GAMECHECK_LOG_LEVEL is not a logging level name.", {"value": level_name})

    return Settings(
        data_dir=data_dir,
        workers=workers,
        case_insensitive=case_insensitive,
        extra_game_paths=extra_paths,
        pause_on_exit=pause_on_exit,
        log_level=log_level,
    )
