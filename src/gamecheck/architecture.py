"""32-bit file detection: flag assemblies built for a legacy processor architecture."""

from __future__ import annotations

from gamecheck.models import Architecture, Inventory
from gamecheck.paths import display_order

# Anything else (X86, Arm, IA64, ...) dates from the 32-bit game releases.
SUPPORTED_ARCHITECTURES: frozenset[Architecture] = frozenset({
    Architecture.NONE,
    Architecture.MSIL,
    Architecture.AMD64,
})


def is_legacy_architecture(architecture: Architecture | None) -> bool:
    """True for a known architecture tag that the 64-bit game can't load."""
    return architecture is not None and architecture not in SUPPORTED_ARCHITECTURES


def find_legacy_files(actual: Inventory) -> list[tuple[str, Architecture]]:
    """List (path, architecture) for every 32-bit file, ordered by path.

    Doesn't consult the manifest.
    """
    matches = [
        (rel, fp.architecture)
        for rel, fp in actual.items()
        if fp.architecture is not None and is_legacy_architecture(fp.architecture)
    ]
    matches.sort(key=lambda m: display_order(m[0]))
    return matches
