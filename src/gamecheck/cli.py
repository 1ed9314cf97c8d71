"""gamecheck console entry point: locate the game, check its files, print the report."""

from __future__ import annotations

import argparse
import logging
import os
import platform as platform_info
import sys
import traceback
from dataclasses import dataclass
from typing import Callable, TextIO

from colorama import Fore, Style, just_fix_windows_console

from gamecheck.architecture import find_legacy_files
from gamecheck.config import Settings, load_settings
from gamecheck.inventory import FileInspector, build_inventory
from gamecheck.manifest import load_manifest, write_snapshot
from gamecheck.models import Architecture, Inventory, Issue
from gamecheck.pe_reader import inspect_file
from gamecheck.reconcile import group_issues, reconcile
from gamecheck.report import (
    ReportSection,
    format_integrity,
    format_legacy_files,
    format_system_info,
    render,
)
from gamecheck.resolver import (
    InstallPathResolver,
    Platform,
    default_game_paths,
    detect_game_folders,
    detect_platform,
)

logger = logging.getLogger(__name__)


class TerminalConsole:
    """Console output with red/green highlighting when attached to a terminal."""

    def __init__(
        self,
        stream: TextIO | None = None,
        reader: Callable[[str], str] = input,
        color: bool | None = None,
    ) -> None:
        self.stream = sys.stdout if stream is None else stream
        self.reader = reader
        self.color = self.stream.isatty() if color is None else color

    def info(self, message: str) -> None:
        self._write(message, None)

    def error(self, message: str) -> None:
        self._write(message, Fore.RED)

    def success(self, message: str) -> None:
        self._write(message, Fore.GREEN)

    def ask(self, prompt: str = "") -> str:
        self.stream.flush()
        return self.reader(prompt)

    def section(self, section: ReportSection) -> None:
        title, rule, *body = render(section)
        self.info(title)
        self.info(rule)
        show = {True: self.success, False: self.error, None: self.info}[section.ok]
        for line in body:
            show(line)
        self.info("")

    def _write(self, message: str, color: str | None) -> None:
        if color and self.color:
            message = f"{color}{message}{Style.RESET_ALL}"
        self.stream.write(message + "\n")


@dataclass
class CheckResult:
    game_dir: str
    actual: Inventory
    legacy_files: list[tuple[str, Architecture]]
    issues: list[Issue]
    snapshot_path: str


def system_info(platform: Platform) -> dict[str, object]:
    return {
        "Platform": f"{platform.value} ({platform_info.platform()})",
        "64-bit OS": platform_info.machine().endswith("64"),
        "64-bit process": sys.maxsize > 2**32,
        "Processor architecture": os.environ.get("PROCESSOR_ARCHITECTURE") or platform_info.machine(),
        "PATH value": os.environ.get("PATH", ""),
    }


def run_check(
    settings: Settings,
    console: TerminalConsole,
    game_path: str | None = None,
    inspector: FileInspector = inspect_file,
    platform: Platform | None = None,
) -> CheckResult:
    """Resolve the game folder, compare it to the manifest, print the report, write the snapshot."""
    platform = detect_platform() if platform is None else platform
    candidates = [*default_game_paths(platform), *settings.extra_game_paths]
    resolver = InstallPathResolver(
        console,
        platform,
        detect=lambda: detect_game_folders(settings.data_dir, candidates),
    )
    game_dir = resolver.resolve(game_path)
    logger.info("Checking game folder %s", game_dir)

    manifest = load_manifest(settings.manifest_path, settings.case_insensitive)
    actual = build_inventory(
        game_dir,
        manifest.ignore_relative_paths,
        inspector,
        scan_subdirs=settings.scan_subdirs,
        case_insensitive=settings.case_insensitive,
        workers=settings.workers,
    )

    legacy_files = find_legacy_files(actual)
    issues = reconcile(manifest.expected_files, actual, settings.case_insensitive)

    console.info("")
    console.info("")
    console.section(format_system_info(system_info(platform)))
    console.section(format_legacy_files(legacy_files))
    console.section(format_integrity(group_issues(issues)))

    write_snapshot(settings.snapshot_path, manifest.ignore_relative_paths, actual)

    return CheckResult(
        game_dir=game_dir,
        actual=actual,
        legacy_files=legacy_files,
        issues=issues,
        snapshot_path=settings.snapshot_path,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamecheck",
        description="Check a Stardew Valley install folder for missing, unexpected, or modified files.",
    )
    parser.add_argument(
        "game_path",
        nargs="?",
        help="game folder to check (skips automatic detection)",
    )
    return parser


def main(argv: list[str] | None = None, console: TerminalConsole | None = None) -> int:
    """Entry point. Errors are printed, never raised; the exit code is always 0."""
    args = build_parser().parse_args(argv)
    just_fix_windows_console()  # ANSI colors in the classic Windows console
    console = TerminalConsole() if console is None else console
    pause = True

    try:
        settings = load_settings()
        pause = settings.pause_on_exit
        logging.basicConfig(
            level=settings.log_level,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        run_check(settings, console, args.game_path)
    except Exception:
        console.error(f"Unhandled exception:\n{traceback.format_exc()}")

    console.info("")
    console.info("You can press enter to exit.")
    if pause:
        try:
            console.ask()
        except EOFError:
            pass  # stdin closed, nothing to wait for
    return 0


if __name__ == "__main__":
    sys.exit(main())
