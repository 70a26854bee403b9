"""JSON document I/O for the stores.

Documents are read whole and written whole: serialize to a temp file in
the same directory, fsync, then ``os.replace`` over the target, so a
crash mid-write never leaves a half-written visible file. The file and
its directory are restricted to the owning user.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from pairguard.errors import CorruptStoreError


def ensure_private_dir(directory: Path) -> None:
    """Create the store directory with owner-only permissions."""
    directory.mkdir(parents=True, exist_ok=True, mode=0o700)
    try:
        directory.chmod(0o700)
    except PermissionError as e:
        logger.warning("Could not restrict permissions on {}: {}", directory, e)


def read_json_document(path: Path) -> Any | None:
    """Load a JSON document. Returns None if the file does not exist.

    Raises:
        CorruptStoreError: the file exists but is not valid JSON.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptStoreError(path, str(e)) from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as pretty-printed UTF-8 JSON with a trailing newline."""
    ensure_private_dir(path.parent)
    payload = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    tmp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    path.chmod(0o600)
