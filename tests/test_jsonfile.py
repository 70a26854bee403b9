"""Tests for atomic JSON document I/O."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from pairguard.errors import CorruptStoreError
from pairguard.storage.jsonfile import ensure_private_dir, read_json_document, write_json_atomic


def test_write_then_read(tmp_path):
    path = tmp_path / "dir" / "doc.json"
    write_json_atomic(path, {"entries": ["ü"]})
    assert path.read_text(encoding="utf-8") == '{\n  "entries": [\n    "ü"\n  ]\n}\n'
    assert read_json_document(path) == {"entries": ["ü"]}


def test_missing_and_blank_files_read_as_none(tmp_path):
    assert read_json_document(tmp_path / "missing.json") is None
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_json_document(blank) is None


def test_invalid_json_is_corrupt(tmp_path):
    path = tmp_path / "doc.json"
    path.write_text("{")
    with pytest.raises(CorruptStoreError) as exc_info:
        read_json_document(path)
    assert exc_info.value.path == path


def test_failed_replace_keeps_previous_document(tmp_path):
    path = tmp_path / "doc.json"
    write_json_atomic(path, {"version": 1})

    with patch("pairguard.storage.jsonfile.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            write_json_atomic(path, {"version": 2})

    assert json.loads(path.read_text()) == {"version": 1}
    assert list(tmp_path.glob("*.tmp")) == []


def test_unrestrictable_directory_is_reported(tmp_path):
    directory = tmp_path / "shared"
    with patch.object(Path, "chmod", side_effect=PermissionError("not owner")), \
            patch("pairguard.storage.jsonfile.logger") as log:
        ensure_private_dir(directory)

    assert directory.is_dir()
    log.warning.assert_called_once()
    assert directory in log.warning.call_args.args
