"""Identifier normalization shared by the stores and the policy engine."""

from pairguard.identity.normalize import (
    Token,
    TokenKind,
    WILDCARD,
    is_username,
    normalize,
    parse_identifier,
)

__all__ = ["Token", "TokenKind", "WILDCARD", "is_username", "normalize", "parse_identifier"]
