"""Concurrent rotation of the same refresh token.

Two threads present one refresh token at the same moment. A barrier inside
validate_refresh_token holds both until each has seen the live record, so
the test always exercises the interleaving where both pass validation and
then race on consuming the record. Exactly one may win.
"""

from __future__ import annotations

import threading

import pytest

from auth.errors import TokenNotFoundError
from auth.session import SessionManager


class _BarrierRefreshStore:
    """Delegates to a real store; validate_refresh_token waits for a partner."""

    def __init__(self, inner, barrier: threading.Barrier) -> None:
        self._inner = inner
        self._barrier = barrier

    def validate_refresh_token(self, raw_token):
        record = self._inner.validate_refresh_token(raw_token)
        self._barrier.wait(timeout=10)
        return record

    def __getattr__(self, name):
        return getattr(self._inner, name)


def _race(sessions: SessionManager, raw_refresh: str):
    barrier = threading.Barrier(2)
    sessions.refresh_store = _BarrierRefreshStore(sessions.refresh_store, barrier)
    results: list = []
    lock = threading.Lock()

    def attempt() -> None:
        try:
            outcome = sessions.refresh_tokens(raw_refresh)
        except Exception as exc:  # collected and asserted on below
            outcome = exc
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    sessions.refresh_store = sessions.refresh_store._inner
    return results


class TestDoubleRefresh:
    def test_exactly_one_rotation_wins(self, sessions: SessionManager) -> None:
        uid = sessions.register("race@example.com", "secret123")
        pair = sessions.login("race@example.com", "secret123")

        results = _race(sessions, pair.refresh_token)

        assert len(results) == 2
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], TokenNotFoundError)

        # Only the winner's refresh token was stored.
        assert sessions.refresh_tokens(winners[0].refresh_token)
        assert sessions.logout_all(uid) == 1

    def test_sequential_reuse_still_rejected(self, sessions: SessionManager) -> None:
        sessions.register("seq@example.com", "secret123")
        pair = sessions.login("seq@example.com", "secret123")
        sessions.refresh_tokens(pair.refresh_token)
        for _ in range(3):
            with pytest.raises(TokenNotFoundError):
                sessions.refresh_tokens(pair.refresh_token)
