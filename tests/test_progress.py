"""Tests for progress notification, cancellation tokens, and phase tracking."""

import logging

import pytest

from nanobook.errors import PipelineCancelledError
from nanobook.progress import CancellationToken, PhaseTracker, check_cancelled, notify


class TestNotify:

    def test_delivers_payload(self):
        received = []
        notify(received.append, "Writing Chapter 1: The Lie...")
        assert received == ["Writing Chapter 1: The Lie..."]

    def test_no_observer(self):
        notify(None, "ignored")

    def test_observer_exception_logged(self, caplog):
        def observer(payload):
            raise RuntimeError("listener gone")

        with caplog.at_level(logging.WARNING, logger="nanobook.progress"):
            notify(observer, "status")
        assert "listener gone" in caplog.text


class TestCancellationToken:

    def test_initially_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()
        check_cancelled(token)
        check_cancelled(None)

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled
        with pytest.raises(PipelineCancelledError):
            check_cancelled(token)


class TestPhaseTracker:

    def test_phases_recorded(self):
        tracker = PhaseTracker("Dropshipping")
        tracker.start()
        tracker.phase_started("Research")
        tracker.phase_completed()
        tracker.phase_started("Authoring")
        tracker.phase_completed()
        total = tracker.finish()

        assert [p["name"] for p in tracker.completed_phases] == ["Research", "Authoring"]
        assert all(p["duration"] >= 0 for p in tracker.completed_phases)
        assert total >= 0

    def test_phase_started_implies_start(self):
        tracker = PhaseTracker("x")
        tracker.phase_started("Research")
        assert tracker.start_time is not None

    def test_finish_without_start(self):
        assert PhaseTracker("x").finish() == 0.0

    def test_complete_without_phase_is_noop(self):
        tracker = PhaseTracker("x")
        tracker.phase_completed()
        assert tracker.completed_phases == []

    def test_failed_banner(self, caplog):
        tracker = PhaseTracker("Dropshipping")
        with caplog.at_level(logging.INFO, logger="nanobook.progress"):
            tracker.start()
            tracker.finish("failed")
        assert "RUN FAILED: Dropshipping" in caplog.text
