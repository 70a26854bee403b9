"""Mention extraction from Telegram message entities."""

from __future__ import annotations

from typing import Any, Iterable


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _utf16_slice(text: str, offset: int, length: int) -> str:
    # Telegram entity offsets count UTF-16 code units.
    encoded = text.encode("utf-16-le")
    return encoded[offset * 2:(offset + length) * 2].decode("utf-16-le", errors="ignore")


def collect_mentions(text: str, entities: Iterable[Any] | None) -> list[str]:
    """Return lower-cased usernames mentioned via ``mention``/``text_mention``."""
    mentions: list[str] = []
    for entity in entities or ():
        kind = _field(entity, "type")
        if kind == "mention":
            offset = _field(entity, "offset") or 0
            length = _field(entity, "length") or 0
            mention = _utf16_slice(text, offset, length).lstrip("@").strip().lower()
            if mention:
                mentions.append(mention)
        elif kind == "text_mention":
            username = _field(_field(entity, "user"), "username")
            if username:
                mentions.append(username.lower())
    return mentions


def extract_mentions(
    text: str | None = None,
    entities: Iterable[Any] | None = None,
    caption: str | None = None,
    caption_entities: Iterable[Any] | None = None,
) -> list[str]:
    """Mentions from a message's text and caption, de-duplicated in order."""
    seen: dict[str, None] = {}
    for mention in collect_mentions(text or "", entities):
        seen.setdefault(mention, None)
    for mention in collect_mentions(caption or "", caption_entities):
        seen.setdefault(mention, None)
    return list(seen)
