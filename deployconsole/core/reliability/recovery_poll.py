"""
Recovery poll — wait for a restarted service to answer again.

A fixed-interval probe with a hard attempt ceiling.  No backoff, no
jitter: the service is expected back within a known window, and past
the ceiling there is nothing more the console can do.

Outcomes:
    RECOVERED  → a probe reported the service alive.
    EXHAUSTED  → max_attempts probes ran, none alive.  No further action.
    CANCELLED  → cancel() was called before either of the above.

The first probe runs one interval after start, never immediately.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 60


class PollOutcome(StrEnum):
    """Terminal states of a recovery poll."""

    RECOVERED = "recovered"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass
class RecoveryPoller:
    """Cancellable scheduled probe.

    Args:
        probe: Returns True once the service is reachable again.
        interval: Seconds between probes.
        max_attempts: Probes before giving up.
    """

    probe: Callable[[], bool]
    interval: float = DEFAULT_INTERVAL
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    # ── Internal state ───────────────────────────────────────────
    attempts: int = 0
    outcome: PollOutcome | None = None
    _stop: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _thread: threading.Thread | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> PollOutcome:
        """Poll on the calling thread until a terminal outcome."""
        while self.attempts < self.max_attempts:
            if self._stop.wait(self.interval):
                return self._finish(PollOutcome.CANCELLED)
            self.attempts += 1
            alive = self.probe()
            if self._stop.is_set():
                return self._finish(PollOutcome.CANCELLED)
            logger.debug(
                "Recovery probe %d/%d: %s",
                self.attempts, self.max_attempts, "alive" if alive else "down",
            )
            if alive:
                return self._finish(PollOutcome.RECOVERED)
        return self._finish(PollOutcome.EXHAUSTED)

    def start(
        self,
        on_recovered: Callable[[], None] | None = None,
        on_exhausted: Callable[[], None] | None = None,
    ) -> RecoveryPoller:
        """Poll on a background thread and fire the matching callback."""

        def _target() -> None:
            outcome = self.run()
            if outcome == PollOutcome.RECOVERED and on_recovered is not None:
                on_recovered()
            elif outcome == PollOutcome.EXHAUSTED and on_exhausted is not None:
                on_exhausted()

        self._thread = threading.Thread(target=_target, name="recovery-poll", daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stop.set()

    def wait(self, timeout: float | None = None) -> PollOutcome | None:
        """Block until the background poll ends; returns its outcome."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.outcome

    def _finish(self, outcome: PollOutcome) -> PollOutcome:
        self.outcome = outcome
        log = logger.warning if outcome == PollOutcome.EXHAUSTED else logger.info
        log("Recovery poll %s after %d attempt(s)", outcome.value, self.attempts)
        return outcome
