"""Tests for secretguard.secret — payload buffers and handles."""

from unittest.mock import MagicMock

import pytest

from secretguard.clock import ManualClock
from secretguard.errors import SecretExpiredError, SecretReleasedError
from secretguard.models import SecretState
from secretguard.secret import ScopedSecret, Secret


def _handle(payload="hunter2", lifetime=10.0, clock=None):
    clock = clock or ManualClock()
    secret = Secret("wallet1", payload, acquired_at=clock.now(), lifetime=lifetime)
    on_release = MagicMock(side_effect=lambda h: h._invalidate(SecretState.RELEASED))
    on_overdue = MagicMock(side_effect=lambda h: h._invalidate(SecretState.EXPIRED))
    return ScopedSecret(
        secret, "alice", clock=clock, on_release=on_release, on_overdue=on_overdue
    ), on_release, on_overdue


class TestSecret:
    def test_wipe_zeroes_buffer(self):
        s = Secret("k", "hunter2", acquired_at=0, lifetime=1)
        buf = s._buf
        assert s.wipe() is True
        assert bytes(buf) == b"\x00" * 7
        assert s.wiped

    def test_wipe_idempotent(self):
        s = Secret("k", b"abc", acquired_at=0, lifetime=1)
        s.wipe()
        assert s.wipe() is False

    def test_read_after_wipe(self):
        s = Secret("k", b"abc", acquired_at=0, lifetime=1)
        s.wipe()
        with pytest.raises(SecretExpiredError):
            s.read()

    def test_repr_hides_payload(self):
        s = Secret("k", "hunter2", acquired_at=0, lifetime=1)
        assert "hunter2" not in repr(s)
        assert "live" in repr(s)

    def test_expires_at(self):
        s = Secret("k", "x", acquired_at=100.0, lifetime=30.0)
        assert s.expires_at == 130.0


class TestScopedSecret:
    def test_reveal(self):
        h, _, _ = _handle()
        assert h.reveal() == b"hunter2"
        assert h.reveal_text() == "hunter2"

    def test_context_manager_calls_release(self):
        h, on_release, _ = _handle()
        with h:
            pass
        on_release.assert_called_once_with(h)
        with pytest.raises(SecretReleasedError):
            h.reveal()

    def test_overdue_read_triggers_expiry(self):
        clock = ManualClock()
        h, _, on_overdue = _handle(lifetime=5, clock=clock)
        clock.advance(5)
        with pytest.raises(SecretExpiredError):
            h.reveal()
        on_overdue.assert_called_once_with(h)
        assert h.state == SecretState.EXPIRED

    def test_remaining(self):
        clock = ManualClock()
        h, _, _ = _handle(lifetime=5, clock=clock)
        clock.advance(2)
        assert h.remaining() == pytest.approx(3)
        h.release()
        assert h.remaining() == 0.0

    def test_invalidate_once(self):
        h, _, _ = _handle()
        assert h._invalidate(SecretState.RELEASED) is True
        assert h._invalidate(SecretState.EXPIRED) is False
        assert h.state == SecretState.RELEASED

    def test_repr_hides_payload(self):
        h, _, _ = _handle()
        assert "hunter2" not in repr(h)
        assert "alice" in repr(h)
