"""Cooperative cancellation for long-running engine calls.

A ``JobTracker`` hands out tokens with increasing job ids. Starting a new job
supersedes every older token issued by the same tracker. Engines call
``token.checkpoint()`` between independent units of work (one sweep, one
permutation trial, one model order) and abandon the call, returning ``None``,
once the token has been superseded.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class JobTracker:
    """Issues cancellation tokens; the newest token is the only current one."""

    def __init__(self) -> None:
        self._latest_id = 0

    @property
    def latest_id(self) -> int:
        return self._latest_id

    def start(self, on_yield: Optional[Callable[[], None]] = None) -> "CancellationToken":
        """Begin a new job, superseding all earlier ones."""
        self._latest_id += 1
        logger.debug(f"Started job {self._latest_id}")
        return CancellationToken(self, self._latest_id, on_yield)

    def cancel_all(self) -> None:
        """Supersede every outstanding token without starting a new job."""
        self._latest_id += 1

    def is_current(self, job_id: int) -> bool:
        return job_id == self._latest_id


class CancellationToken:
    """Handle passed into long-running calls."""

    def __init__(
        self,
        tracker: JobTracker,
        job_id: int,
        on_yield: Optional[Callable[[], None]] = None,
    ) -> None:
        self.tracker = tracker
        self.job_id = job_id
        self.on_yield = on_yield

    @property
    def superseded(self) -> bool:
        return not self.tracker.is_current(self.job_id)

    def checkpoint(self) -> bool:
        """Suspension point. Returns True while the job is still current."""
        if self.on_yield is not None:
            self.on_yield()
        if self.superseded:
            logger.info(f"Job {self.job_id} superseded by job {self.tracker.latest_id}")
            return False
        return True


def still_current(token: Optional[CancellationToken]) -> bool:
    """Checkpoint helper that treats a missing token as always current."""
    return token is None or token.checkpoint()
