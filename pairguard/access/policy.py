"""Access policy engine: decides whether an inbound message is let through."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from pairguard.auth.allowlist import AllowListStore, matches
from pairguard.auth.pairing import PairingStore
from pairguard.config.schema import TelegramAccessConfig
from pairguard.errors import PairguardError, PairingQuotaExceededError
from pairguard.identity.normalize import Token, TokenKind, normalize, parse_identifier

RETRY_LATER_REPLY = "Unable to start pairing right now. Please try again later."


class ChatKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"

    @classmethod
    def from_telegram(cls, chat_type: str) -> "ChatKind":
        """Map a Telegram chat type (private/group/supergroup/channel)."""
        return cls.DIRECT if chat_type == "private" else cls.GROUP


@dataclass
class AccessRequest:
    """What the transport knows about an inbound message."""

    sender_id: str
    chat_id: str
    chat_kind: ChatKind
    sender_username: str | None = None
    mentions: list[str] = field(default_factory=list)


@dataclass
class AccessDecision:
    """Outcome of an access check.

    ``reason`` is operator-facing and may carry internal detail. ``reply`` is
    the text to send back to the sender, if any.
    """

    allowed: bool
    reason: str | None = None
    pairing_code: str | None = None
    reply: str | None = None


def pairing_reply(code: str) -> str:
    return (
        "This bot needs the owner's approval before it will talk to you.\n"
        f"Your pairing code: {code}\n"
        f"Ask the owner to run: pairguard pairing approve telegram {code}"
    )


class AccessController:
    """Evaluates DM and group policies against the configured allow-lists.

    Never raises for a well-formed request: store failures and unknown
    policy values become deny decisions.
    """

    def __init__(
        self,
        config: TelegramAccessConfig,
        allowlist: AllowListStore,
        pairing: PairingStore,
        bot_username: str | None = None,
    ):
        self.config = config
        self.allowlist = allowlist
        self.pairing = pairing
        self._dm_allow = {parse_identifier(e) for e in config.allow_from}
        self._group_allow = {parse_identifier(e) for e in config.group_allow_from}
        self._keywords = set(config.mention_keywords)
        self.bot_username: str | None = None
        self.set_bot_username(bot_username)

    def set_bot_username(self, username: str | None) -> None:
        self.bot_username = username.strip().lstrip("@").lower() if username else None

    def evaluate(self, request: AccessRequest) -> AccessDecision:
        if request.chat_kind == ChatKind.DIRECT:
            decision = self._evaluate_dm(request)
        elif request.chat_kind == ChatKind.GROUP:
            decision = self._evaluate_group(request)
        else:
            decision = AccessDecision(False, f"Unknown chat kind '{request.chat_kind}'")

        if not decision.allowed:
            logger.debug(
                "Blocked message from {} in chat {}: {}",
                request.sender_id, request.chat_id, decision.reason,
            )
        return decision

    async def aevaluate(self, request: AccessRequest) -> AccessDecision:
        """Evaluate off the event loop; store calls block on file I/O."""
        return await asyncio.to_thread(self.evaluate, request)

    # ------------------------------------------------------------------
    # DM
    # ------------------------------------------------------------------

    def _evaluate_dm(self, request: AccessRequest) -> AccessDecision:
        policy = self.config.dm_policy.strip().lower()
        if policy == "disabled":
            return AccessDecision(False, "DMs disabled")
        if policy == "open":
            return AccessDecision(True)
        if policy not in ("allowlist", "pairing"):
            logger.warning("Unknown DM policy '{}', denying", self.config.dm_policy)
            return AccessDecision(False, f"Unknown DM policy '{self.config.dm_policy}'")

        sender = normalize(request.sender_id)
        chat = normalize(request.chat_id)
        if sender is None or sender.is_wildcard or chat is None or chat.is_wildcard:
            return AccessDecision(False, "Invalid sender or chat identifier")
        candidates = self._sender_tokens(sender, request.sender_username)

        try:
            allowed = matches(self._dm_allow, candidates) or self.allowlist.is_allowed(*candidates)
        except (PairguardError, OSError) as e:
            logger.warning("Allow-list lookup failed: {}", e)
            return AccessDecision(False, f"Access store error: {e}")
        if allowed:
            return AccessDecision(True)

        if policy == "allowlist":
            return AccessDecision(False, "Sender not in DM allowlist")
        return self._start_pairing(chat, sender, request.sender_username)

    def _start_pairing(self, chat: Token, sender: Token, username: str | None) -> AccessDecision:
        try:
            code = self.pairing.generate(chat.value, sender.value, username)
        except PairingQuotaExceededError as e:
            return AccessDecision(False, str(e), reply=RETRY_LATER_REPLY)
        except (PairguardError, OSError) as e:
            logger.warning("Pairing request failed for sender {}: {}", sender.value, e)
            return AccessDecision(False, f"Pairing store error: {e}", reply=RETRY_LATER_REPLY)

        logger.info("Pairing requested by sender {} in chat {}", sender.value, chat.value)
        return AccessDecision(
            False, "Pairing required", pairing_code=code, reply=pairing_reply(code),
        )

    @staticmethod
    def _sender_tokens(sender: Token, username: str | None) -> list[Token]:
        tokens = [sender]
        by_name = normalize(username)
        if by_name is not None and by_name.kind is TokenKind.USERNAME:
            tokens.append(by_name)
        return tokens

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _evaluate_group(self, request: AccessRequest) -> AccessDecision:
        policy = self.config.group_policy.strip().lower()
        if policy == "disabled":
            return AccessDecision(False, "Group messages disabled")

        if policy == "allowlist":
            chat = normalize(request.chat_id)
            if chat is None or chat.is_wildcard:
                return AccessDecision(False, "Invalid chat identifier")
            try:
                allowed = (
                    matches(self._group_allow, [chat])
                    or self.allowlist.is_chat_allowed(chat)
                )
            except (PairguardError, OSError) as e:
                logger.warning("Chat allow-list lookup failed: {}", e)
                return AccessDecision(False, f"Access store error: {e}")
            if not allowed:
                return AccessDecision(False, "Group not in allowlist")
        elif policy != "open":
            logger.warning("Unknown group policy '{}', denying", self.config.group_policy)
            return AccessDecision(False, f"Unknown group policy '{self.config.group_policy}'")

        if self.config.require_mention and not self._was_mentioned(request.mentions):
            return AccessDecision(False, "Missing mention")
        return AccessDecision(True)

    def _was_mentioned(self, mentions: list[str]) -> bool:
        lowered = {m.strip().lstrip("@").lower() for m in mentions}
        if self.bot_username and self.bot_username in lowered:
            return True
        return bool(self._keywords & lowered)
