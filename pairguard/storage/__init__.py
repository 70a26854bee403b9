"""File locking and atomic JSON persistence for the on-disk stores."""

from pairguard.storage.jsonfile import read_json_document, write_json_atomic
from pairguard.storage.lock import FileLock, LockHandle

__all__ = ["FileLock", "LockHandle", "read_json_document", "write_json_atomic"]
