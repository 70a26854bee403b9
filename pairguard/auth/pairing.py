"""Pending pairing request storage for the Telegram access flow."""

from __future__ import annotations

import secrets
import time
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pairguard.errors import (
    CorruptStoreError,
    InvalidIdentifierError,
    PairingExpiredError,
    PairingNotFoundError,
    PairingQuotaExceededError,
)
from pairguard.identity import is_username, parse_identifier
from pairguard.storage.jsonfile import read_json_document, write_json_atomic
from pairguard.storage.lock import LOCK_RETRY_DELAY_SECONDS, LOCK_TIMEOUT_SECONDS, FileLock

# No 0/O, 1/I/L
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
PAIRING_TTL_MS = 60 * 60 * 1000
MAX_PENDING_PER_CHAT = 3

DEFAULT_PATH = Path.home() / ".pairguard" / "credentials" / "telegram-pairing.json"


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_username(username: str | None) -> str | None:
    """Clean a Telegram username, or None when it is not a usable one.

    Values that would read back as an id or the wildcard are dropped.
    """
    if not username:
        return None
    value = username.strip().lstrip("@").strip().lower()
    return value if is_username(value) else None


class PairingRequest(BaseModel):
    """A pending pairing request as persisted in the store document."""

    model_config = ConfigDict(
        strict=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    code: str
    chat_id: str
    user_id: str
    username: str | None = None
    created_at: int
    expires_at: int

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("username")
    @classmethod
    def _clean_username(cls, v: str | None) -> str | None:
        return normalize_username(v)

    def is_expired(self, now: int) -> bool:
        return self.expires_at <= now

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def generate_code(taken: set[str]) -> str:
    """Draw a random code that is not already in ``taken``."""
    while True:
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        if code not in taken:
            return code


class PairingStore:
    """File-based storage for pending pairing requests.

    The document lives at ``~/.pairguard/credentials/telegram-pairing.json``
    by default, with a sibling ``.lock`` file. Every operation reads the whole
    document under the lock, drops expired requests, mutates, and writes it
    back atomically.

    A sender that makes contact again while its request is still open gets
    the same code back, and its request restarts the full TTL from now.
    New senders are refused with PairingQuotaExceededError once a chat holds
    ``max_pending_per_chat`` open requests.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        ttl_ms: int = PAIRING_TTL_MS,
        max_pending_per_chat: int = MAX_PENDING_PER_CHAT,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        lock_retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.path = path or DEFAULT_PATH
        self.ttl_ms = ttl_ms
        self.max_pending_per_chat = max_pending_per_chat
        self._clock = clock
        self._lock = FileLock(
            self.path.with_suffix(".lock"),
            timeout=lock_timeout,
            retry_delay=lock_retry_delay,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[PairingRequest]:
        doc = read_json_document(self.path)
        if doc is None:
            return []

        # Older files stored a bare array.
        if isinstance(doc, list):
            rows = doc
        elif isinstance(doc, dict):
            rows = doc.get("pairings", [])
            if not isinstance(rows, list):
                raise CorruptStoreError(self.path, "'pairings' is not a list")
        else:
            raise CorruptStoreError(self.path, f"unexpected top-level {type(doc).__name__}")

        entries: list[PairingRequest] = []
        seen: set[str] = set()
        for row in rows:
            try:
                entry = PairingRequest.model_validate(row)
            except ValidationError:
                logger.warning("Skipping malformed pairing record in {}", self.path)
                continue
            if entry.code in seen:
                logger.warning("Skipping duplicate pairing code in {}", self.path)
                continue
            seen.add(entry.code)
            entries.append(entry)
        return entries

    def _save(self, entries: list[PairingRequest]) -> None:
        write_json_atomic(self.path, {"pairings": [e.to_record() for e in entries]})

    def _prune(
        self, entries: list[PairingRequest], now: int
    ) -> tuple[list[PairingRequest], list[PairingRequest]]:
        kept = [e for e in entries if not e.is_expired(now)]
        expired = [e for e in entries if e.is_expired(now)]
        if expired:
            logger.debug("Pruned {} expired pairing request(s)", len(expired))
        return kept, expired

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate(self, chat_id: str | int, user_id: str | int, username: str | None = None) -> str:
        """Return the open code for this sender, creating a request if needed.

        Raises:
            PairingQuotaExceededError: the chat already holds the maximum
                number of open requests for other senders.
            InvalidIdentifierError: ``user_id`` is empty, malformed or the
                wildcard.
            LockTimeoutError: the store lock could not be obtained.
        """
        chat_id, user_id = str(chat_id), str(user_id)
        sender = parse_identifier(user_id)
        if sender.is_wildcard:
            raise InvalidIdentifierError(f"Invalid sender id: {user_id!r}")
        user_id = sender.value
        username = normalize_username(username)

        with self._lock.acquire():
            now = self._clock()
            entries, expired = self._prune(self._load(), now)

            for entry in entries:
                if entry.chat_id == chat_id and entry.user_id == user_id:
                    entry.created_at = now
                    entry.expires_at = now + self.ttl_ms
                    if username:
                        entry.username = username
                    self._save(entries)
                    return entry.code

            pending_for_chat = sum(1 for e in entries if e.chat_id == chat_id)
            if pending_for_chat >= self.max_pending_per_chat:
                if expired:
                    self._save(entries)
                raise PairingQuotaExceededError(chat_id, self.max_pending_per_chat)

            entry = PairingRequest(
                code=generate_code({e.code for e in entries}),
                chat_id=chat_id,
                user_id=user_id,
                username=username,
                created_at=now,
                expires_at=now + self.ttl_ms,
            )
            entries.append(entry)
            self._save(entries)
            return entry.code

    def list_pending(self) -> list[PairingRequest]:
        """Return all open requests, persisting any pruning."""
        with self._lock.acquire():
            entries, expired = self._prune(self._load(), self._clock())
            if expired:
                self._save(entries)
            return entries

    def approve(self, code: str) -> PairingRequest:
        """Consume a code and return its request for promotion.

        Raises:
            PairingExpiredError: the code expired and was pruned by this call.
            PairingNotFoundError: no such code is pending.
        """
        return self._take(code)

    def reject(self, code: str) -> bool:
        """Discard a pending request. Same errors as approve."""
        self._take(code)
        return True

    def clean_expired(self) -> int:
        """Drop expired requests. Returns how many were removed."""
        with self._lock.acquire():
            entries, expired = self._prune(self._load(), self._clock())
            if expired:
                self._save(entries)
            return len(expired)

    def _take(self, code: str) -> PairingRequest:
        code = code.strip().upper()
        with self._lock.acquire():
            entries, expired = self._prune(self._load(), self._clock())

            for i, entry in enumerate(entries):
                if entry.code == code:
                    del entries[i]
                    self._save(entries)
                    return entry

            if expired:
                self._save(entries)
            for entry in expired:
                if entry.code == code:
                    raise PairingExpiredError(entry)
            raise PairingNotFoundError(code)
