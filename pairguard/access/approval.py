"""Operator-side approval: consume a pairing code and allow-list the sender."""

from loguru import logger

from pairguard.auth.allowlist import AllowListStore
from pairguard.auth.pairing import PairingRequest, PairingStore
from pairguard.identity import Token, TokenKind, is_username


def approve_pairing(code: str, pairing: PairingStore, allowlist: AllowListStore) -> PairingRequest:
    """Approve ``code`` and add the sender's id and username to the allow-list.

    The username is added as a username token as stored, never re-parsed,
    so a hand-edited value like ``*`` or ``777`` cannot widen the grant.

    The two stores are updated one after the other, not atomically. If the
    process dies in between, the request is gone and the sender is not yet
    allow-listed; they have to pair again.

    Raises:
        PairingNotFoundError, PairingExpiredError: from the pairing store.
    """
    request = pairing.approve(code)
    allowlist.add(request.user_id)
    if request.username and is_username(request.username):
        allowlist.add(Token(TokenKind.USERNAME, request.username))
    logger.info("Approved pairing for user {} (chat {})", request.user_id, request.chat_id)
    return request
