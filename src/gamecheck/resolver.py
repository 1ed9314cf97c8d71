"""Install folder discovery: classify game folders and resolve the folder to check.

The interactive flow is a small state machine so every retry path can be
driven by a scripted console in tests:

    CHECK_SPECIFIED       valid -> RESOLVED, otherwise -> AWAITING_CHOICE
    AWAITING_CHOICE       detected folder picked -> RESOLVED,
                          custom path or nothing detected -> AWAITING_MANUAL_PATH
    AWAITING_MANUAL_PATH  valid -> RESOLVED, otherwise explain and ask again
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from typing import Callable, Iterable, Protocol

from gamecheck.pe_reader import read_pe_info

logger = logging.getLogger(__name__)

GAME_DLL = "Stardew Valley.dll"
GAME_EXECUTABLES: tuple[str, ...] = ("Stardew Valley.exe", "StardewValley.exe")
MIN_MODERN_VERSION = (1, 5, 5)


class Platform(Enum):
    WINDOWS = "Windows"
    LINUX = "Linux"
    MAC = "macOS"


class GameFolderType(Enum):
    VALID = "valid"
    LEGACY_154_OR_EARLIER = "legacy_154_or_earlier"
    LEGACY_COMPATIBILITY_BRANCH = "legacy_compatibility_branch"
    NO_GAME_FOUND = "no_game_found"
    INVALID_UNKNOWN = "invalid_unknown"


class ResolveState(Enum):
    CHECK_SPECIFIED = "check_specified"
    AWAITING_CHOICE = "awaiting_choice"
    AWAITING_MANUAL_PATH = "awaiting_manual_path"
    RESOLVED = "resolved"


FOLDER_PROBLEMS: dict[GameFolderType, list[str]] = {
    GameFolderType.LEGACY_154_OR_EARLIER: [
        "That directory seems to have Stardew Valley 1.5.4 or earlier.",
        "Please update your game to the latest version to use SMAPI.",
    ],
    GameFolderType.LEGACY_COMPATIBILITY_BRANCH: [
        "That directory seems to have the Stardew Valley legacy 'compatibility' branch.",
        "Unfortunately SMAPI is only compatible with the modern version of the game.",
        "Please update your game to the main branch to use SMAPI.",
    ],
    GameFolderType.NO_GAME_FOUND: [
        "That directory doesn't contain a Stardew Valley executable.",
    ],
    GameFolderType.INVALID_UNKNOWN: [
        "That directory doesn't seem to contain a valid game install.",
    ],
}


class Console(Protocol):
    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def ask(self, prompt: str = "") -> str: ...


def detect_platform(system: str | None = None) -> Platform:
    system = sys.platform if system is None else system
    if system.startswith("win") or system == "cygwin":
        return Platform.WINDOWS
    if system == "darwin":
        return Platform.MAC
    return Platform.LINUX


def looks_like_game_folder(path: str) -> bool:
    return any(os.path.isfile(os.path.join(path, name)) for name in (GAME_DLL, *GAME_EXECUTABLES))


def classify_game_folder(path: str) -> GameFolderType:
    """Tell a modern install apart from legacy builds and non-game folders.

    Modern releases ship the game as 'Stardew Valley.dll'. Older ones only
    have the executable: 1.5.4 or earlier, or the 1.5.6 'compatibility' branch.
    """
    if not looks_like_game_folder(path):
        return GameFolderType.NO_GAME_FOUND
    if os.path.isfile(os.path.join(path, GAME_DLL)):
        return GameFolderType.VALID

    exe = next(
        os.path.join(path, name) for name in GAME_EXECUTABLES if os.path.isfile(os.path.join(path, name))
    )
    info = read_pe_info(exe)
    if info is None or info.version is None:
        return GameFolderType.INVALID_UNKNOWN

    version = tuple(int(part) for part in info.version.split("."))
    if version < MIN_MODERN_VERSION:
        return GameFolderType.LEGACY_154_OR_EARLIER
    return GameFolderType.LEGACY_COMPATIBILITY_BRANCH


def default_game_paths(
    platform: Platform,
    home: str | None = None,
    environ: dict[str, str] | None = None,
) -> list[str]:
    """Usual Steam and GOG install locations for the platform."""
    env = os.environ if environ is None else environ
    home = os.path.expanduser("~") if home is None else home

    if platform is Platform.WINDOWS:
        bases = [
            env.get("ProgramFiles(x86)", "C:\\Program Files (x86)"),
            env.get("ProgramFiles", "C:\\Program Files"),
        ]
        return [
            os.path.join(base, *parts)
            for base in bases
            for parts in (
                ("Steam", "steamapps", "common", "Stardew Valley"),
                ("GOG Galaxy", "Games", "Stardew Valley"),
                ("GalaxyClient", "Games", "Stardew Valley"),
            )
        ]

    if platform is Platform.MAC:
        return [
            os.path.join(home, "Library", "Application Support", "Steam", "steamapps", "common",
                         "Stardew Valley", "Contents", "MacOS"),
            os.path.join("/Applications", "Stardew Valley.app", "Contents", "MacOS"),
        ]

    return [
        os.path.join(home, ".steam", "steam", "steamapps", "common", "Stardew Valley"),
        os.path.join(home, ".local", "share", "Steam", "steamapps", "common", "Stardew Valley"),
        os.path.join(home, ".var", "app", "com.valvesoftware.Steam", "data", "Steam", "steamapps",
                     "common", "Stardew Valley"),
        os.path.join(home, "GOG Games", "Stardew Valley", "game"),
    ]


def detect_game_folders(start: str, candidates: Iterable[str]) -> list[str]:
    """Game folders worth offering: the nearest game folder above start, then candidates that exist."""
    found: list[str] = []
    seen: set[str] = set()

    def add(path: str) -> None:
        key = os.path.normcase(os.path.abspath(path))
        if key not in seen:
            seen.add(key)
            found.append(os.path.abspath(path))

    current = os.path.abspath(start)
    while os.path.dirname(current) != current:  # never the filesystem root
        if looks_like_game_folder(current):
            add(current)
            break
        current = os.path.dirname(current)

    for path in candidates:
        if os.path.isdir(path) and looks_like_game_folder(path):
            add(path)

    logger.debug("Detected game folders: %s", found)
    return found


def normalize_manual_path(raw: str, platform: Platform, home: str | None = None) -> str:
    """Clean up a path typed or pasted by the user.

    Windows: quotes escape spaces and aren't part of the path.
    Linux/macOS: spaces may be backslash-escaped when copied from a shell.
    """
    path = raw.strip()
    if platform is Platform.WINDOWS:
        path = path.replace('"', "")
    else:
        path = path.replace("\\ ", " ")

    if path.startswith("~/"):
        home = os.path.expanduser("~") if home is None else home
        path = os.path.join(home, path[2:])
    return path


class InstallPathResolver:
    """Find the game folder to check, asking the user when needed."""

    def __init__(
        self,
        console: Console,
        platform: Platform,
        detect: Callable[[], list[str]],
        classify: Callable[[str], GameFolderType] = classify_game_folder,
        home: str | None = None,
    ) -> None:
        self.console = console
        self.platform = platform
        self.detect = detect
        self.classify = classify
        self.home = home
        self.state = ResolveState.AWAITING_CHOICE
        self.result: str | None = None
        self._specified: str | None = None

    def resolve(self, specified: str | None = None) -> str:
        self._specified = specified
        self.result = None
        self.state = (
            ResolveState.CHECK_SPECIFIED
            if specified is not None and specified.strip()
            else ResolveState.AWAITING_CHOICE
        )

        steps = {
            ResolveState.CHECK_SPECIFIED: self._check_specified,
            ResolveState.AWAITING_CHOICE: self._await_choice,
            ResolveState.AWAITING_MANUAL_PATH: self._await_manual_path,
        }
        while self.state is not ResolveState.RESOLVED:
            self.state = steps[self.state]()

        assert self.result is not None
        return self.result

    # --- States ---

    def _check_specified(self) -> ResolveState:
        path = self._specified or ""
        if not os.path.isdir(path):
            self.console.error("That folder doesn't exist.")
            return ResolveState.AWAITING_CHOICE

        folder_type = self.classify(path)
        if folder_type is GameFolderType.VALID:
            return self._resolved(path)

        self._explain(folder_type)
        return ResolveState.AWAITING_CHOICE

    def _await_choice(self) -> ResolveState:
        folders = self.detect()
        if not folders:
            self.console.info("Oops, couldn't find the game automatically.")
            return ResolveState.AWAITING_MANUAL_PATH

        self.console.info("Which Stardew Valley folder you want to test?")
        self.console.info("")
        for i, folder in enumerate(folders, start=1):
            self.console.info(f"[{i}] {folder}")
        self.console.info(f"[{len(folders) + 1}] Enter a custom game path.")
        self.console.info("")

        options = [str(i) for i in range(1, len(folders) + 2)]
        index = int(self._choose("Type the number next to your choice, then press enter.", options)) - 1
        if index < len(folders):
            return self._resolved(folders[index])
        return ResolveState.AWAITING_MANUAL_PATH

    def _await_manual_path(self) -> ResolveState:
        self.console.info("")
        self.console.info(
            "Type the file path to the game directory (the one containing "
            "'Stardew Valley.exe' or 'Stardew Valley.dll'), then press enter."
        )
        raw = self.console.ask().strip()
        if not raw:
            self.console.error("You must specify a directory path to continue.")
            return ResolveState.AWAITING_MANUAL_PATH

        path = normalize_manual_path(raw, self.platform, self.home)
        if os.path.isfile(path):
            path = os.path.dirname(path)
        if not os.path.isdir(path):
            self.console.error("That directory doesn't seem to exist.")
            return ResolveState.AWAITING_MANUAL_PATH

        folder_type = self.classify(path)
        if folder_type is GameFolderType.VALID:
            self.console.info("   OK!")
            return self._resolved(path)

        self._explain(folder_type)
        return ResolveState.AWAITING_MANUAL_PATH

    # --- Helpers ---

    def _resolved(self, path: str) -> ResolveState:
        self.result = os.path.abspath(path)
        return ResolveState.RESOLVED

    def _explain(self, folder_type: GameFolderType) -> None:
        for line in FOLDER_PROBLEMS.get(folder_type, FOLDER_PROBLEMS[GameFolderType.INVALID_UNKNOWN]):
            self.console.error(line)

    def _choose(self, message: str, options: list[str]) -> str:
        """Ask until the answer is one of options (not case sensitive)."""
        while True:
            self.console.info(message)
            answer = self.console.ask().strip().lower()
            if answer in options:
                return answer
            self.console.info("That's not a valid option.")
