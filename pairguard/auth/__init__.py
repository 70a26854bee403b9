"""Pairing requests and allow-list storage."""

from pairguard.auth.allowlist import AllowListStore
from pairguard.errors import (
    CorruptStoreError,
    InvalidIdentifierError,
    LockTimeoutError,
    PairguardError,
    PairingError,
    PairingExpiredError,
    PairingNotFoundError,
    PairingQuotaExceededError,
    StoreError,
)
from pairguard.auth.pairing import PairingRequest, PairingStore

__all__ = [
    "AllowListStore",
    "CorruptStoreError",
    "InvalidIdentifierError",
    "LockTimeoutError",
    "PairguardError",
    "PairingError",
    "PairingExpiredError",
    "PairingNotFoundError",
    "PairingQuotaExceededError",
    "PairingRequest",
    "PairingStore",
    "StoreError",
]
