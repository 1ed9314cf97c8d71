"""Tests for 32-bit file detection."""

from __future__ import annotations

import pytest

from gamecheck.architecture import find_legacy_files, is_legacy_architecture
from gamecheck.models import Architecture, FileFingerprint
from gamecheck.reconcile import reconcile


@pytest.mark.parametrize("arch", [None, Architecture.NONE, Architecture.MSIL, Architecture.AMD64])
def test_supported_architectures_not_flagged(arch):
    assert not is_legacy_architecture(arch)


@pytest.mark.parametrize("arch", [Architecture.X86, Architecture.ARM, Architecture.IA64, Architecture.ARM64])
def test_other_architectures_flagged(arch):
    assert is_legacy_architecture(arch)


def test_flags_exactly_the_x86_file():
    actual = {
        "Stardew Valley.dll": FileFingerprint("aaa", Architecture.AMD64, "1.6.0.0"),
        "smapi-internal/0Harmony.dll": FileFingerprint("bbb", Architecture.MSIL, "2.2.2.0"),
        "libSkiaSharp.dll": FileFingerprint("ccc", Architecture.X86, None),
        "Content/Maps/Farm.xnb": FileFingerprint("ddd"),
    }
    assert find_legacy_files(actual) == [("libSkiaSharp.dll", Architecture.X86)]


def test_warning_pass_does_not_affect_reconciler():
    fp = FileFingerprint("ccc", Architecture.X86, None)
    actual = {"libSkiaSharp.dll": fp}
    assert find_legacy_files(actual) == [("libSkiaSharp.dll", Architecture.X86)]
    assert reconcile({"libSkiaSharp.dll": fp}, actual) == []


def test_results_sorted_case_insensitively():
    actual = {
        "b.dll": FileFingerprint("1", Architecture.X86),
        "A.dll": FileFingerprint("2", Architecture.ARM),
        "c.dll": FileFingerprint("3", Architecture.X86),
    }
    assert [rel for rel, _ in find_legacy_files(actual)] == ["A.dll", "b.dll", "c.dll"]
