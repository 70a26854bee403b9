"""Shared fixtures for pairguard tests."""

import pytest

from pairguard.auth.allowlist import AllowListStore
from pairguard.auth.pairing import PairingStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pairing_store(tmp_path, clock):
    return PairingStore(
        tmp_path / "credentials" / "telegram-pairing.json",
        clock=clock,
        lock_timeout=2.0,
        lock_retry_delay=0.01,
    )


@pytest.fixture
def allowlist_store(tmp_path):
    return AllowListStore(
        tmp_path / "credentials" / "telegram-allowlist.json",
        lock_timeout=2.0,
        lock_retry_delay=0.01,
    )
