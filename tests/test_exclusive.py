"""Tests for exclusive (one holder per identifier) mode."""

from __future__ import annotations

import threading

import pytest

from secretguard.errors import LockTimeoutError, SecretNotFoundError
from secretguard.models import Outcome, Reason


class TestExclusiveMode:
    def test_second_acquire_times_out(self, make_guard, sink):
        guard = make_guard(exclusive=True, lock_timeout=0.05)
        holder = guard.acquire("wallet1", "alice")
        with pytest.raises(LockTimeoutError):
            guard.acquire("wallet1", "alice")
        assert sink.records[-1].outcome == Outcome.DENIED
        assert sink.records[-1].reason == Reason.LOCK_TIMEOUT
        holder.release()

    def test_release_frees_slot(self, make_guard):
        guard = make_guard(exclusive=True, lock_timeout=0.05)
        guard.acquire("wallet1", "alice").release()
        guard.acquire("wallet1", "alice").release()

    def test_expiry_frees_slot(self, make_guard, clock):
        guard = make_guard(exclusive=True, lock_timeout=0.05, lifetime=5)
        guard.acquire("wallet1", "alice")
        clock.advance(5)
        guard.acquire("wallet1", "alice").release()

    def test_failed_fetch_frees_slot(self, make_guard, store):
        guard = make_guard(exclusive=True, lock_timeout=0.05)
        with pytest.raises(SecretNotFoundError):
            guard.acquire("wallet9", "alice")
        store.put("svc", "wallet9", "late")
        guard.acquire("wallet9", "alice").release()

    def test_different_identifiers_do_not_block(self, make_guard, store):
        store.put("svc", "wallet2", "two")
        guard = make_guard(exclusive=True, lock_timeout=0.05)
        a = guard.acquire("wallet1", "alice")
        b = guard.acquire("wallet2", "alice")
        assert a.active and b.active

    def test_waiter_gets_slot_after_release(self, make_guard):
        guard = make_guard(exclusive=True, lock_timeout=5)
        holder = guard.acquire("wallet1", "alice")
        got: list = []
        started = threading.Event()

        def waiter():
            started.set()
            with guard.acquire("wallet1", "alice") as h:
                got.append(h.reveal())

        t = threading.Thread(target=waiter)
        t.start()
        started.wait(1)
        holder.release()
        t.join(5)
        assert got == [b"secretpayload"]
