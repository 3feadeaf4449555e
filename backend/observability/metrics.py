"""
Metrics and timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit metrics as JSONL events via observability.logger
- Never aggregate: one metric = one log event
- Provide safe APIs that prevent timer leaks

Design notes:
- Durations use monotonic time for correctness
- Event timestamps (ts_ms) use wall-clock time for human readability
- stop_timer() hands the measured duration back so callers can act on it
  (the latency prober feeds it into the jitter buffer)
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# -----------------------------------------------------------------------------
# Internal timer storage
# -----------------------------------------------------------------------------
# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns:
        timer_id (str): Opaque ID required to stop or discard the timer later.

    Callers MUST call stop_timer() or discard_timer() unless using `timed()`.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    peer_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> float | None:
    """
    Stop a previously started timer and emit a metric event.

    Returns:
        duration in seconds if the timer existed, else None
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ns = time.monotonic_ns() - start_ns

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ns / 1_000_000,
        "peer_id": peer_id,
        "details": details or {},
    })

    return duration_ns / 1_000_000_000


def discard_timer(timer_id: str) -> None:
    """Forget a timer without emitting anything (e.g. probe timed out)."""
    _active_timers.pop(timer_id, None)


def active_timer_count() -> int:
    """Number of timers started but not yet stopped or discarded."""
    return len(_active_timers)


# -----------------------------------------------------------------------------
# Safe API: context manager
# -----------------------------------------------------------------------------

@contextmanager
def timed(
    name: str,
    *,
    peer_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Context manager for measuring durations safely.

    Guarantees:
    - Timer is ALWAYS stopped (no leaks)
    - Metric is emitted exactly once
    - Exceptions inside the block do NOT suppress timing

    Usage:
        with timed("relay_broadcast", peer_id=sender_id):
            await hub.relay_event(...)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, peer_id=peer_id, details=details)
