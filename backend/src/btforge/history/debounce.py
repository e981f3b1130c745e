"""
SnapshotDebouncer - Coalesces rapid attribute edits into one history entry.

There is no timer thread: the owner calls poll() whenever it gets control
(before handling the next action) and records a snapshot when it returns a
label. A newer schedule() replaces the pending one and restarts the quiet
period.
"""

from __future__ import annotations

import time
from typing import Callable, Optional


class SnapshotDebouncer:
    """Pending-snapshot tracker with an injectable clock."""

    def __init__(
        self,
        delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._delay = delay
        self._clock = clock
        self._label: Optional[str] = None
        self._deadline = 0.0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> Optional[str]:
        """Label of the scheduled snapshot, if any."""
        return self._label

    def schedule(self, label: str) -> None:
        self._label = label
        self._deadline = self._clock() + self._delay

    def poll(self) -> Optional[str]:
        """Return and clear the pending label once the quiet period elapsed."""
        if self._label is None or self._clock() < self._deadline:
            return None
        return self.flush()

    def flush(self) -> Optional[str]:
        """Return and clear the pending label immediately."""
        label, self._label = self._label, None
        return label

    def cancel(self) -> None:
        self._label = None
