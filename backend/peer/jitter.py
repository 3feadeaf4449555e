"""
Adaptive jitter buffer controller.

One smoothed scheduling delay per local client, sized from round-trip
latency samples:

    buffer = clamp(rtt * 0.5 * w + buffer * (1 - w), 0, JITTER_BUFFER_MAX_S)

The value is read when a peer's clock offset is first established and at
local emission time. Already-scheduled events never see later updates.
"""

from __future__ import annotations

import math

from constants import (
    JITTER_BUFFER_EMA_WEIGHT,
    JITTER_BUFFER_INITIAL_S,
    JITTER_BUFFER_MAX_S,
    ONE_WAY_FRACTION_OF_RTT,
)
from observability.logger import log_event


class JitterBufferController:
    """Exponential moving average over half-RTT samples, capped."""

    def __init__(
        self,
        *,
        initial_s: float = JITTER_BUFFER_INITIAL_S,
        weight: float = JITTER_BUFFER_EMA_WEIGHT,
        max_s: float = JITTER_BUFFER_MAX_S,
    ) -> None:
        if not 0 < weight <= 1:
            raise ValueError("weight must be in (0, 1]")
        if max_s <= 0:
            raise ValueError("max_s must be > 0")

        self._weight = weight
        self._max_s = max_s
        self._buffer_s = self._clamp(initial_s)
        self.samples_seen = 0

    @property
    def buffer_s(self) -> float:
        return self._buffer_s

    def on_latency_sample(self, rtt_s: float) -> float:
        """
        Fold one round-trip sample into the buffer.

        Negative or non-finite samples are logged and ignored.

        Returns:
            The updated buffer in seconds.
        """
        if not math.isfinite(rtt_s) or rtt_s < 0:
            log_event({
                "event_type": "LATENCY_SAMPLE_REJECTED",
                "rtt_s": repr(rtt_s),
            })
            return self._buffer_s

        one_way_s = rtt_s * ONE_WAY_FRACTION_OF_RTT
        blended = one_way_s * self._weight + self._buffer_s * (1 - self._weight)
        self._buffer_s = self._clamp(blended)
        self.samples_seen += 1

        log_event({
            "event_type": "JITTER_BUFFER_UPDATED",
            "rtt_ms": round(rtt_s * 1000, 3),
            "buffer_ms": round(self._buffer_s * 1000, 3),
        })
        return self._buffer_s

    def _clamp(self, value: float) -> float:
        return min(max(value, 0.0), self._max_s)
