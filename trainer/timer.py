"""Countdown timer and delayed-callback scheduler for the mode controllers.

Both run off an injectable millisecond clock and do nothing on their own:
the front end calls ``tick()`` on its redraw cadence, which polls the timer
and drains due callbacks.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class CountdownTimer:
    """Pausable countdown. A duration of 0 counts up with no limit.

    Pausing captures the remaining time; resuming takes a new reference
    start, so elapsed time is the banked time plus the distance from the
    latest reference start.
    """

    def __init__(self, duration_ms: int, clock: Callable[[], int] = monotonic_ms) -> None:
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")
        self.duration_ms = duration_ms
        self._clock = clock
        self._banked_ms = 0
        self._reference_start: int | None = None
        self._started = False
        self._expired = False

    @property
    def unlimited(self) -> bool:
        return self.duration_ms == 0

    @property
    def started(self) -> bool:
        return self._started

    @property
    def running(self) -> bool:
        return self._reference_start is not None

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self) -> None:
        """(Re)start from the full duration."""
        self._banked_ms = 0
        self._reference_start = self._clock()
        self._started = True
        self._expired = False

    def pause(self) -> None:
        if self._reference_start is None:
            return
        self._banked_ms += self._clock() - self._reference_start
        self._reference_start = None

    def resume(self) -> None:
        if self._reference_start is None and self._started and not self._expired:
            self._reference_start = self._clock()

    def stop(self) -> None:
        """Freeze the timer; elapsed time is kept for scoring."""
        self.pause()

    def elapsed_ms(self) -> int:
        elapsed = self._banked_ms
        if self._reference_start is not None:
            elapsed += self._clock() - self._reference_start
        if not self.unlimited:
            elapsed = min(elapsed, self.duration_ms)
        return elapsed

    def remaining_ms(self) -> int | None:
        """Time left, or None for an unlimited timer."""
        if self.unlimited:
            return None
        return max(0, self.duration_ms - self.elapsed_ms())

    def tick(self) -> bool:
        """Poll the timer. Returns True exactly once, when time runs out."""
        if self.unlimited or not self.running or self._expired:
            return False
        if self.remaining_ms() == 0:
            self.stop()
            self._expired = True
            return True
        return False


@dataclass
class ScheduledCall:
    """Handle for a delayed callback."""

    due_ms: int
    callback: Callable[[], object]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """Delayed callbacks run by ``run_due()`` in due order."""

    def __init__(self, clock: Callable[[], int] = monotonic_ms) -> None:
        self._clock = clock
        self._calls: list[ScheduledCall] = []
        self._running: list[ScheduledCall] = []

    def call_later(self, delay_ms: int, callback: Callable[[], object]) -> ScheduledCall:
        call = ScheduledCall(self._clock() + delay_ms, callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for c in self._calls if not c.cancelled)

    def run_due(self) -> int:
        """Run every callback whose time has come; returns how many ran."""
        now = self._clock()
        due = sorted(
            (c for c in self._calls if c.due_ms <= now and not c.cancelled),
            key=lambda c: c.due_ms,
        )
        self._calls = [c for c in self._calls if c.due_ms > now and not c.cancelled]
        self._running = due

        ran = 0
        for call in due:
            # An earlier callback may have cancelled this one
            if call.cancelled:
                continue
            call.cancelled = True
            call.callback()
            ran += 1
        self._running = []
        return ran

    def cancel_all(self) -> None:
        for call in [*self._calls, *self._running]:
            call.cancel()
        self._calls.clear()
