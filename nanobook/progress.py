"""
Progress reporting and cancellation for long-running generation runs.

The observer is a plain callable receiving either a list of AgentState
snapshots (research phase) or a free-text status line (author phase).
It is fire-and-forget: exceptions it raises are logged and dropped.
"""

import logging
import time
from typing import Any, Callable, Optional

from nanobook.errors import PipelineCancelledError

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[Any], None]


def notify(observer: Optional[ProgressObserver], payload: Any) -> None:
    """Invoke ``observer`` synchronously; a throwing observer never aborts the run."""
    if observer is None:
        return
    try:
        observer(payload)
    except Exception as e:
        logger.warning("Progress observer raised %s: %s", type(e).__name__, e)


class CancellationToken:
    """Set once by the caller; checked by the pipeline before every generation call."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        if not self._cancelled:
            logger.info("Cancellation requested")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise PipelineCancelledError("Generation cancelled by caller")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


class PhaseTracker:
    """Logs phase banners with elapsed time for a pipeline run."""

    def __init__(self, run_name: str):
        self.run_name = run_name
        self.start_time = None
        self.phase_start_time = None
        self.current_phase = None
        self.completed_phases = []

    def start(self):
        self.start_time = time.time()
        logger.info("=" * 70)
        logger.info("RUN STARTED: %s", self.run_name)
        logger.info("=" * 70)

    def phase_started(self, name: str):
        if self.start_time is None:
            self.start()
        self.current_phase = name
        self.phase_start_time = time.time()
        logger.info("-" * 70)
        logger.info("PHASE %d: %s", len(self.completed_phases) + 1, name.upper())
        logger.info("-" * 70)

    def phase_completed(self):
        if self.current_phase is None:
            return
        elapsed = time.time() - self.phase_start_time
        self.completed_phases.append({'name': self.current_phase, 'duration': elapsed})
        logger.info("PHASE COMPLETE: %s (%.1fs)", self.current_phase, elapsed)
        self.current_phase = None

    def finish(self, status: str = "completed"):
        if self.start_time is None:
            return 0.0
        total = time.time() - self.start_time
        logger.info("=" * 70)
        logger.info("RUN %s: %s in %.1fs (%d phases)",
                    status.upper(), self.run_name, total, len(self.completed_phases))
        logger.info("=" * 70)
        return total
