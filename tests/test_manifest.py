"""Tests for manifest parsing (with comments) and snapshot writing."""

from __future__ import annotations

import json

import pytest

from gamecheck.errors import ManifestError, ManifestFormatError, ManifestNotFoundError
from gamecheck.manifest import (
    dump_manifest,
    load_manifest,
    parse_manifest,
    strip_json_comments,
    write_snapshot,
)
from gamecheck.models import Architecture, FileFingerprint


SAMPLE = """
// expected files for Stardew Valley 1.6
{
  /* paths that change between machines */
  "IgnoreRelativePaths": [
    "Stardew Valley.deps.json"
  ],
  "ExpectedFiles": {
    "Stardew Valley.dll": {
      "Architecture": "Amd64",
      "AssemblyVersion": "1.6.0.0",
      "Hash": "0123ABCD"
    },
    "Content\\\\Maps\\\\Farm.xnb": { "Hash": "ffff" }, // content file
    "smapi-internal/0Harmony.dll": { "Architecture": "msil", "AssemblyVersion": null, "Hash": "aa" }
  }
}
"""


def test_load_sample_with_comments(tmp_path):
    path = tmp_path / "expected-files.json"
    path.write_text(SAMPLE, encoding="utf-8")

    manifest = load_manifest(str(path))

    assert manifest.ignore_relative_paths == frozenset({"Stardew Valley.deps.json"})
    assert manifest.expected_files == {
        "Stardew Valley.dll": FileFingerprint("0123abcd", Architecture.AMD64, "1.6.0.0"),
        "Content/Maps/Farm.xnb": FileFingerprint("ffff"),
        "smapi-internal/0Harmony.dll": FileFingerprint("aa", Architecture.MSIL, None),
    }


def test_comment_markers_inside_strings_are_kept():
    text = '{"a": "http://example.com/*x*/", "b": "say \\"//hi\\""} // tail'
    assert json.loads(strip_json_comments(text)) == {"a": "http://example.com/*x*/", "b": 'say "//hi"'}


def test_block_comment_keeps_line_numbers():
    stripped = strip_json_comments('/* one\ntwo\n*/{"a": 1}')
    assert stripped.count("\n") == 2


def test_unterminated_block_comment():
    with pytest.raises(ManifestFormatError):
        strip_json_comments('{"a": 1} /* never closed')


def test_missing_manifest(tmp_path):
    with pytest.raises(ManifestNotFoundError) as exc:
        load_manifest(str(tmp_path / "expected-files.json"))
    assert isinstance(exc.value, ManifestError)
    assert exc.value.code == "E_MANIFEST_NOT_FOUND"


def test_invalid_json_reports_position(tmp_path):
    path = tmp_path / "expected-files.json"
    path.write_text('{\n  "ExpectedFiles": {,}\n}', encoding="utf-8")
    with pytest.raises(ManifestFormatError) as exc:
        load_manifest(str(path))
    assert exc.value.details["line"] == 2


@pytest.mark.parametrize("data", [
    [],
    {"IgnoreRelativePaths": []},
    {"IgnoreRelativePaths": "x", "ExpectedFiles": {}},
    {"ExpectedFiles": {"a.dll": {}}},
    {"ExpectedFiles": {"a.dll": {"Hash": ""}}},
    {"ExpectedFiles": {"a.dll": "abc"}},
    {"ExpectedFiles": {"a.dll": {"Hash": "a", "Architecture": "Sparc"}}},
    {"ExpectedFiles": {"a.dll": {"Hash": "a", "Architecture": 4}}},
    {"ExpectedFiles": {"a.dll": {"Hash": "a", "AssemblyVersion": 1}}},
])
def test_bad_shapes_rejected(data):
    with pytest.raises(ManifestFormatError):
        parse_manifest(data)


def test_camel_case_keys_accepted():
    manifest = parse_manifest({
        "ignoreRelativePaths": ["x.txt"],
        "expectedFiles": {"a.dll": {"architecture": "x64", "assemblyVersion": "1.0.0.0", "hash": "ab"}},
    })
    assert manifest.ignore_relative_paths == frozenset({"x.txt"})
    assert manifest.expected_files["a.dll"] == FileFingerprint("ab", Architecture.AMD64, "1.0.0.0")


def test_ignore_paths_optional():
    manifest = parse_manifest({"ExpectedFiles": {}})
    assert manifest.ignore_relative_paths == frozenset()


def test_snapshot_omits_absent_fields():
    text = dump_manifest(["b.txt", "A.txt"], {
        "Content/Farm.xnb": FileFingerprint("ff"),
        "Stardew Valley.dll": FileFingerprint("aa", Architecture.AMD64, "1.6.0.0"),
    })
    data = json.loads(text)
    assert data["IgnoreRelativePaths"] == ["A.txt", "b.txt"]
    assert data["ExpectedFiles"]["Content/Farm.xnb"] == {"Hash": "ff"}
    assert data["ExpectedFiles"]["Stardew Valley.dll"] == {
        "Architecture": "Amd64",
        "AssemblyVersion": "1.6.0.0",
        "Hash": "aa",
    }
    assert "null" not in text
    assert text.startswith('{\n  "IgnoreRelativePaths"')


def test_snapshot_round_trip(tmp_path):
    actual = {
        "Stardew Valley.dll": FileFingerprint("aa", Architecture.AMD64, "1.6.0.0"),
        "smapi-internal/0Harmony.dll": FileFingerprint("bb", Architecture.MSIL, None),
        "smapi-internal/native.dll": FileFingerprint("cc", Architecture.NONE, None),
        "Content/Maps/Farm.xnb": FileFingerprint("dd"),
    }
    path = tmp_path / "actual-files.json"
    write_snapshot(str(path), {"Stardew Valley.deps.json"}, actual)

    reloaded = load_manifest(str(path))
    assert reloaded.expected_files == actual
    assert reloaded.expected_files["Content/Maps/Farm.xnb"].architecture is None
    assert reloaded.ignore_relative_paths == frozenset({"Stardew Valley.deps.json"})


def test_same_file_listed_twice_rejected():
    data = {"ExpectedFiles": {"Content\\x.xnb": {"Hash": "a"}, "Content/x.xnb": {"Hash": "b"}}}
    with pytest.raises(ManifestFormatError) as exc:
        parse_manifest(data)
    assert exc.value.details == {"path": "Content/x.xnb", "other": "Content\\x.xnb"}


def test_case_duplicates_follow_case_mode():
    data = {"ExpectedFiles": {"A.dll": {"Hash": "a"}, "a.dll": {"Hash": "b"}}}
    assert set(parse_manifest(data).expected_files) == {"A.dll", "a.dll"}
    with pytest.raises(ManifestFormatError):
        parse_manifest(data, case_insensitive=True)


def test_load_passes_case_mode(tmp_path):
    path = tmp_path / "expected-files.json"
    path.write_text('{"ExpectedFiles": {"A.dll": {"Hash": "a"}, "a.dll": {"Hash": "b"}}}', encoding="utf-8")
    with pytest.raises(ManifestFormatError):
        load_manifest(str(path), case_insensitive=True)
