"""Tests for the lock-file manager."""

import json
import os
import subprocess
import sys
import threading
import time
from unittest.mock import patch

import pytest

from pairguard.errors import LockTimeoutError
from pairguard.storage.lock import FileLock, pid_alive


def _dead_pid() -> int:
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


class TestAcquireRelease:
    def test_writes_owner_record(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        handle = FileLock(lock_path).acquire()
        try:
            owner = json.loads(lock_path.read_text())
            assert owner["pid"] == os.getpid()
            assert isinstance(owner["createdAt"], int)
        finally:
            handle.release()
        assert not lock_path.exists()

    def test_context_manager_releases_on_error(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        with pytest.raises(RuntimeError):
            with FileLock(lock_path).acquire():
                raise RuntimeError("boom")
        assert not lock_path.exists()

    def test_release_twice_is_harmless(self, tmp_path):
        handle = FileLock(tmp_path / "store.lock").acquire()
        handle.release()
        handle.release()
        assert handle.released

    def test_creates_missing_parent(self, tmp_path):
        lock_path = tmp_path / "a" / "b" / "store.lock"
        with FileLock(lock_path).acquire():
            assert lock_path.exists()


class TestContention:
    def test_times_out_when_owner_alive(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        lock_path.write_text(json.dumps({"pid": os.getpid(), "createdAt": 0}))

        start = time.monotonic()
        with pytest.raises(LockTimeoutError):
            FileLock(lock_path, timeout=0.2, retry_delay=0.02).acquire()
        assert time.monotonic() - start >= 0.2
        # Live owner's file is left alone
        assert lock_path.exists()

    def test_reclaims_lock_of_dead_process(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        lock_path.write_text(json.dumps({"pid": _dead_pid(), "createdAt": 0}))

        start = time.monotonic()
        with FileLock(lock_path, timeout=1.0).acquire():
            owner = json.loads(lock_path.read_text())
            assert owner["pid"] == os.getpid()
        assert time.monotonic() - start < 1.0

    def test_reclaims_old_ownerless_lock(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        lock_path.write_text("not json")
        old = time.time() - 60
        os.utime(lock_path, (old, old))

        with FileLock(lock_path, timeout=1.0).acquire():
            assert json.loads(lock_path.read_text())["pid"] == os.getpid()

    def test_fresh_ownerless_lock_is_respected(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        lock_path.write_text("")

        with pytest.raises(LockTimeoutError):
            FileLock(lock_path, timeout=0.2, retry_delay=0.02, stale_after=30).acquire()

    def test_reclaim_leaves_no_side_files(self, tmp_path):
        lock_path = tmp_path / "store.lock"
        lock_path.write_text(json.dumps({"pid": _dead_pid(), "createdAt": 0}))

        with FileLock(lock_path, timeout=1.0).acquire():
            assert [p.name for p in tmp_path.iterdir()] == ["store.lock"]
        assert list(tmp_path.iterdir()) == []

    def test_late_reclaimer_keeps_lock_recreated_by_another(self, tmp_path):
        """Two contenders find the same dead lock; only one may end up holding."""
        lock_path = tmp_path / "store.lock"
        lock_path.write_text(json.dumps({"pid": _dead_pid(), "createdAt": 0}))
        slow = FileLock(lock_path, timeout=0.2, retry_delay=0.01)
        fast = FileLock(lock_path, timeout=1.0, retry_delay=0.01)
        real_pid_alive = pid_alive
        held = []

        def judge_then_let_other_in(pid):
            alive = real_pid_alive(pid)
            if not held:
                held.append(None)
                # slow has judged the lock stale; fast reclaims and takes it first
                held[0] = fast.acquire()
                held.append(lock_path.stat().st_ino)
            return alive

        with patch("pairguard.storage.lock.pid_alive", side_effect=judge_then_let_other_in):
            with pytest.raises(LockTimeoutError):
                slow.acquire()

        fast_handle, fast_ino = held
        assert not fast_handle.released
        assert lock_path.stat().st_ino == fast_ino
        assert json.loads(lock_path.read_text())["pid"] == os.getpid()
        assert [p.name for p in tmp_path.iterdir()] == ["store.lock"]

        fast_handle.release()
        with slow.acquire():
            assert lock_path.exists()
        assert not lock_path.exists()

    def test_threads_are_serialized(self, tmp_path):
        lock = FileLock(tmp_path / "counter.lock", timeout=5.0, retry_delay=0.005)
        counter = tmp_path / "counter.txt"
        counter.write_text("0")

        def bump():
            for _ in range(5):
                with lock.acquire():
                    value = int(counter.read_text())
                    time.sleep(0.001)
                    counter.write_text(str(value + 1))

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter.read_text() == "20"


def test_pid_alive():
    assert pid_alive(os.getpid())
    assert not pid_alive(_dead_pid())
