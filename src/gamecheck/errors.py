"""Error taxonomy: fatal configuration and I/O failures with stable codes."""

from __future__ import annotations

from typing import Any


class GameCheckError(Exception):
    """Base class for failures that abort a check run."""

    code = "E_INTERNAL"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code}] {self.message}"
        extra = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"[{self.code}] {self.message} ({extra})"


class ConfigError(GameCheckError):
    code = "E_CONFIG"


class ManifestError(GameCheckError):
    """The expected-files manifest can't be used. Raised before any scanning."""

    code = "E_MANIFEST"


class ManifestNotFoundError(ManifestError):
    code = "E_MANIFEST_NOT_FOUND"


class ManifestFormatError(ManifestError):
    code = "E_MANIFEST_FORMAT"


class InventoryError(GameCheckError):
    """A game file couldn't be read while fingerprinting. No partial report."""

    code = "E_IO_ERROR"


class ScanCancelled(GameCheckError):
    code = "E_CANCELLED"
