"""Error kinds raised by the pairing and allow-list stores."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pairguard.auth.pairing import PairingRequest


class PairguardError(Exception):
    """Base class for all pairguard errors."""


class InvalidIdentifierError(PairguardError, ValueError):
    """Raised when a caller supplies an identifier that cannot be normalized."""


class StoreError(PairguardError):
    """Raised when a backing store cannot be read, locked, or written."""


class LockTimeoutError(StoreError):
    """Raised when a store lock cannot be obtained within the timeout."""

    def __init__(self, lock_path: Path, timeout: float):
        super().__init__(f"Timed out after {timeout:.1f}s acquiring lock {lock_path}")
        self.lock_path = lock_path
        self.timeout = timeout


class CorruptStoreError(StoreError):
    """Raised when a store document is unreadable as a whole."""

    def __init__(self, path: Path, detail: str):
        super().__init__(f"Store {path} is corrupt: {detail}")
        self.path = path
        self.detail = detail


class PairingError(PairguardError):
    """Base class for pairing lifecycle errors."""


class PairingNotFoundError(PairingError):
    """Raised when a code does not match any pending pairing request."""

    def __init__(self, code: str):
        super().__init__(f"Pairing code {code} not found")
        self.code = code


class PairingExpiredError(PairingError):
    """Raised when a code matched a request that expired before lookup."""

    def __init__(self, request: PairingRequest):
        super().__init__(f"Pairing code {request.code} has expired")
        self.request = request


class PairingQuotaExceededError(PairingError):
    """Raised when a chat already holds the maximum number of pending requests."""

    def __init__(self, chat_id: str, limit: int):
        super().__init__(f"Maximum pending pairings ({limit}) reached for chat {chat_id}")
        self.chat_id = chat_id
        self.limit = limit
