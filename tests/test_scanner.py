"""Tests for depcheck.scanner."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from depcheck.scanner import ComponentScanner


def test_scanner_collects_supported_files(tmp_path: Path) -> None:
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "a.jar").write_bytes(b"jar-a")
    (tmp_path / "lib" / "B.WAR").write_bytes(b"war-b")
    (tmp_path / "lib" / "notes.txt").write_text("skip", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "hidden.jar").write_bytes(b"ignored")

    components = ComponentScanner({"jar", ".war"}).scan([tmp_path, tmp_path / "lib" / "a.jar"])

    assert [item.file_name for item in components] == ["B.WAR", "a.jar"]
    first = components[1]
    assert first.sha1 == hashlib.sha1(b"jar-a").hexdigest()
    assert first.md5 == hashlib.md5(b"jar-a").hexdigest()


def test_scanner_rejects_missing_paths(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ComponentScanner({"jar"}).scan([tmp_path / "missing"])
