"""
Playback timeline: a min-ordered timer queue on the local clock.

Responsibilities:
- Hold deferred playback callbacks keyed by absolute local time
- Hand out a cancellable handle per entry
- Fire due entries in (time, insertion) order
- When bound to an asyncio loop, keep exactly one loop timer armed for
  the earliest live entry (no blocking sleeps)

Non-responsibilities:
- NO knowledge of notes, peers or offsets
- NO clamping (callers schedule already-clamped times)

Without a bound loop the timeline is fully deterministic: tests drive it
with run_due(now).
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable

from observability.logger import log_event


TimelineCallback = Callable[[float], None]


class ScheduledHandle:
    """Cancellation token for one timeline entry."""

    def __init__(self, when: float, label: str = "") -> None:
        self.when = when
        self.label = label
        self._cancelled = False
        self._fired = False

    def cancel(self) -> bool:
        """
        Cancel the entry if it has not fired yet.

        Returns True if this call cancelled it.
        """
        if self._fired or self._cancelled:
            return False
        self._cancelled = True
        return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._fired or self._cancelled)

    def _mark_fired(self) -> None:
        self._fired = True


@dataclass(order=True)
class _Entry:
    when: float
    seq: int
    handle: ScheduledHandle = field(compare=False)
    callback: TimelineCallback = field(compare=False)


class PlaybackTimeline:
    """Min-heap of scheduled callbacks with lazy deletion of cancelled ones."""

    def __init__(self, *, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._heap: list[_Entry] = []
        self._seq = itertools.count()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._armed_for: float | None = None

    # -------------------------
    # Loop binding
    # -------------------------

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start firing entries from loop timers."""
        self._loop = loop
        self._arm()

    def unbind(self) -> None:
        """Stop loop-driven firing. Entries stay queued."""
        self._disarm()
        self._loop = None

    # -------------------------
    # Core operations
    # -------------------------

    def schedule_at(
        self,
        when: float,
        callback: TimelineCallback,
        *,
        label: str = "",
    ) -> ScheduledHandle:
        """
        Register callback(when) to run at local time `when`.

        Past times are allowed; they fire on the next run_due().
        """
        handle = ScheduledHandle(when, label)
        heapq.heappush(self._heap, _Entry(when, next(self._seq), handle, callback))
        if self._armed_for is None or when < self._armed_for:
            self._arm()
        return handle

    def run_due(self, now: float | None = None) -> int:
        """
        Fire every live entry with when <= now, earliest first.

        Returns:
            Number of callbacks fired.
        """
        if now is None:
            now = self._clock()

        fired = 0
        while self._heap and self._heap[0].when <= now:
            entry = heapq.heappop(self._heap)
            if entry.handle.cancelled:
                continue

            entry.handle._mark_fired()  # pylint: disable=protected-access
            try:
                entry.callback(entry.when)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "TIMELINE_CALLBACK_ERROR",
                    "label": entry.handle.label,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            fired += 1
        return fired

    def clear(self) -> None:
        """Cancel everything still pending."""
        for entry in self._heap:
            entry.handle.cancel()
        self._heap.clear()
        self._disarm()

    # -------------------------
    # Introspection helpers
    # -------------------------

    def next_due(self) -> float | None:
        """Time of the earliest live entry, or None."""
        while self._heap and self._heap[0].handle.cancelled:
            heapq.heappop(self._heap)
        return self._heap[0].when if self._heap else None

    def pending_count(self) -> int:
        return sum(1 for entry in self._heap if entry.handle.pending)

    def __len__(self) -> int:
        return self.pending_count()

    # -------------------------
    # Internal
    # -------------------------

    def _arm(self) -> None:
        if self._loop is None:
            return
        self._disarm()

        when = self.next_due()
        if when is None:
            return

        delay = max(0.0, when - self._clock())
        self._armed_for = when
        self._timer = self._loop.call_later(delay, self._on_timer)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._armed_for = None

    def _on_timer(self) -> None:
        target = self._armed_for
        self._timer = None
        self._armed_for = None

        # loop timers may fire a hair early; never fire short of the target
        now = self._clock()
        if target is not None and now < target:
            now = target
        self.run_due(now)
        self._arm()
