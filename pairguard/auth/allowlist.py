"""Durable allow-list of approved users and chats."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from pairguard.errors import CorruptStoreError
from pairguard.identity.normalize import Token, normalize, parse_identifier, token_from_record
from pairguard.storage.jsonfile import read_json_document, write_json_atomic
from pairguard.storage.lock import LOCK_RETRY_DELAY_SECONDS, LOCK_TIMEOUT_SECONDS, FileLock

DEFAULT_PATH = Path.home() / ".pairguard" / "credentials" / "telegram-allowlist.json"


@dataclass
class _AllowDocument:
    users: list[Token] = field(default_factory=list)
    chats: list[Token] = field(default_factory=list)

    def bucket(self, chat: bool) -> list[Token]:
        return self.chats if chat else self.users


def matches(allowed: list[Token] | set[Token], candidates) -> bool:
    """True if ``allowed`` holds a wildcard or any normalized candidate."""
    allowed = set(allowed)
    if any(t.is_wildcard for t in allowed):
        return True
    for raw in candidates:
        token = normalize(raw)
        if token is not None and token in allowed:
            return True
    return False


class AllowListStore:
    """File-based set of approved identifiers.

    The document holds user entries under ``entries`` and chat entries under
    ``chats``, each a list of ``{"type": "id"|"username"|"wildcard",
    "value": ...}`` rows. Rows that fail to normalize are skipped on load;
    a document that is not a JSON object or array raises CorruptStoreError.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        lock_retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
    ):
        self.path = path or DEFAULT_PATH
        self._lock = FileLock(
            self.path.with_suffix(".lock"),
            timeout=lock_timeout,
            retry_delay=lock_retry_delay,
        )

    def _load(self) -> _AllowDocument:
        doc = read_json_document(self.path)
        if doc is None:
            return _AllowDocument()

        if isinstance(doc, list):
            user_rows, chat_rows = doc, []
        elif isinstance(doc, dict):
            user_rows = doc.get("entries", [])
            chat_rows = doc.get("chats", [])
            if not isinstance(user_rows, list) or not isinstance(chat_rows, list):
                raise CorruptStoreError(self.path, "'entries' and 'chats' must be lists")
        else:
            raise CorruptStoreError(self.path, f"unexpected top-level {type(doc).__name__}")

        return _AllowDocument(
            users=self._parse_rows(user_rows),
            chats=self._parse_rows(chat_rows),
        )

    def _parse_rows(self, rows: list) -> list[Token]:
        tokens: list[Token] = []
        for row in rows:
            token = token_from_record(row)
            if token is None:
                logger.warning("Skipping malformed allow-list record in {}: {!r}", self.path, row)
                continue
            if token not in tokens:
                tokens.append(token)
        return tokens

    def _save(self, doc: _AllowDocument) -> None:
        write_json_atomic(self.path, {
            "entries": [t.to_dict() for t in doc.users],
            "chats": [t.to_dict() for t in doc.chats],
        })

    def is_allowed(self, *users: str | int | Token | None) -> bool:
        """Check whether any of the given user identifiers is allow-listed."""
        with self._lock.acquire():
            return matches(self._load().users, users)

    def is_chat_allowed(self, *chats: str | int | Token | None) -> bool:
        """Check whether any of the given chat identifiers is allow-listed."""
        with self._lock.acquire():
            return matches(self._load().chats, chats)

    def add(self, identifier: str | int | Token, *, chat: bool = False) -> bool:
        """Add an identifier. Returns False if it was already present.

        Raises:
            InvalidIdentifierError: the identifier cannot be normalized.
        """
        token = parse_identifier(identifier)
        with self._lock.acquire():
            doc = self._load()
            bucket = doc.bucket(chat)
            if token in bucket:
                return False
            bucket.append(token)
            self._save(doc)
        logger.info("Added {} to {} allow-list", token, "chat" if chat else "user")
        return True

    def remove(self, identifier: str | int | Token, *, chat: bool = False) -> bool:
        """Remove an identifier. Returns whether an entry was removed."""
        token = parse_identifier(identifier)
        with self._lock.acquire():
            doc = self._load()
            bucket = doc.bucket(chat)
            if token not in bucket:
                return False
            bucket.remove(token)
            self._save(doc)
        logger.info("Removed {} from {} allow-list", token, "chat" if chat else "user")
        return True

    def entries(self, *, chat: bool = False) -> list[Token]:
        """Return the stored user (or chat) entries in insertion order."""
        with self._lock.acquire():
            return list(self._load().bucket(chat))
