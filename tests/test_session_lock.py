"""Tests for the single-flight session guard."""

from __future__ import annotations

import logging

import pytest

from aicommander.ai.errors import AlreadyInProgress
from aicommander.ai.orchestration.session_lock import SessionGuard, SessionState


def test_try_acquire_rejects_second_session() -> None:
    guard = SessionGuard()

    assert guard.try_acquire("text-line") is True
    assert guard.try_acquire("img-line") is False
    assert guard.is_busy
    assert guard.active_label == "text-line"

    guard.release()
    assert guard.state is SessionState.IDLE
    assert guard.active_label is None
    assert guard.try_acquire("img-line") is True


def test_release_when_idle_is_a_no_op() -> None:
    guard = SessionGuard()

    guard.release()

    assert not guard.is_busy


def test_hold_releases_on_exception() -> None:
    guard = SessionGuard()

    with pytest.raises(RuntimeError):
        with guard.hold("text-prompt"):
            assert guard.is_busy
            raise RuntimeError("boom")

    assert not guard.is_busy


def test_hold_raises_when_busy_and_keeps_first_session() -> None:
    guard = SessionGuard()

    with guard.hold("first") as session:
        with pytest.raises(AlreadyInProgress) as info:
            with guard.hold("second"):
                pass  # pragma: no cover - never entered
        assert guard.active_label == "first"
        assert session.session_id == 1

    assert info.value.message == "A generation is already in progress."
    assert not guard.is_busy


def test_release_logs_session_duration(caplog: pytest.LogCaptureFixture) -> None:
    guard = SessionGuard()

    with caplog.at_level(logging.INFO, logger="aicommander.ai.orchestration.session_lock"):
        with guard.hold("img-line") as session:
            assert session.elapsed() >= 0.0

    released = [record.getMessage() for record in caplog.records if "released" in record.getMessage()]
    assert len(released) == 1
    assert "(img-line) after " in released[0]
