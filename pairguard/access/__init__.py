"""Access policy evaluation for inbound chat messages."""

from pairguard.access.approval import approve_pairing
from pairguard.access.mentions import extract_mentions
from pairguard.access.policy import (
    AccessController,
    AccessDecision,
    AccessRequest,
    ChatKind,
)

__all__ = [
    "AccessController",
    "AccessDecision",
    "AccessRequest",
    "ChatKind",
    "approve_pairing",
    "extract_mentions",
]
