"""Canonical tokens for sender and chat identifiers.

Raw identifiers arrive in several shapes: numeric ids (``555``,
``-1001234``), usernames with or without ``@``, channel-prefixed forms
(``telegram:alice``, ``tg:555``) and the ``*`` wildcard.  Everything that
compares identities goes through :func:`normalize` so a value written by
one path is found by a lookup from another.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from pairguard.errors import InvalidIdentifierError

WILDCARD = "*"

_PREFIX_RE = re.compile(r"^(?:telegram|tg):", re.IGNORECASE)
_ID_RE = re.compile(r"^-?\d+$")
_USERNAME_RE = re.compile(r"^[a-z0-9_]+$")


class TokenKind(str, Enum):
    ID = "id"
    USERNAME = "username"
    WILDCARD = "wildcard"


@dataclass(frozen=True)
class Token:
    """A normalized identifier."""

    kind: TokenKind
    value: str

    @property
    def is_wildcard(self) -> bool:
        return self.kind is TokenKind.WILDCARD

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind.value, "value": self.value}

    def __str__(self) -> str:
        if self.kind is TokenKind.USERNAME:
            return f"@{self.value}"
        return self.value


def normalize(raw: str | int | Token | None) -> Token | None:
    """Normalize a raw identifier, or return None when nothing is left.

    Idempotent: a Token (or its string form) normalizes to itself.
    """
    if raw is None:
        return None
    if isinstance(raw, Token):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        raw = str(raw)

    value = raw.strip()
    value = _PREFIX_RE.sub("", value, count=1).strip()
    if value.startswith("@"):
        value = value[1:].strip()
    if not value:
        return None

    if value == WILDCARD:
        return Token(TokenKind.WILDCARD, WILDCARD)
    if _ID_RE.match(value):
        return Token(TokenKind.ID, value)
    return Token(TokenKind.USERNAME, value.lower())


def is_username(value: str) -> bool:
    """True for a lower-cased value that can only be read back as a username."""
    return bool(_USERNAME_RE.match(value)) and not _ID_RE.match(value)


def parse_identifier(raw: str | int | Token | None) -> Token:
    """Strict variant of normalize for caller-supplied identifiers.

    Raises:
        InvalidIdentifierError: empty input, or a username with characters
            outside ``[a-z0-9_]``.
    """
    token = normalize(raw)
    if token is None:
        raise InvalidIdentifierError(f"Empty identifier: {raw!r}")
    if token.kind is TokenKind.USERNAME and not _USERNAME_RE.match(token.value):
        raise InvalidIdentifierError(f"Invalid identifier: {raw!r}")
    return token


def token_from_record(record: object) -> Token | None:
    """Rebuild a token from a persisted row, or None if the row is malformed.

    Rows are either ``{"type": ..., "value": ...}`` objects or flat token
    strings. The value is re-normalized so hand-edited files load the same
    way config entries do.
    """
    if isinstance(record, str):
        raw = record
        expected = None
    elif isinstance(record, dict):
        raw = record.get("value")
        expected = record.get("type")
        if not isinstance(raw, str) or not isinstance(expected, str):
            return None
    else:
        return None

    try:
        token = parse_identifier(raw)
    except InvalidIdentifierError:
        return None
    if expected is not None and expected != token.kind.value:
        return None
    return token
