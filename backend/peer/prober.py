"""
Round-trip latency prober.

Responsibilities:
- Send PING with a fresh probe token and await the matching PONG
- Measure the round trip on a monotonic timer (observability.metrics)
- Feed each sample into the jitter buffer controller
- Run one early probe shortly after start, then one per interval

Probes are independent: a probe still in flight when the next one starts
is neither cancelled nor deduplicated. A probe whose ack never arrives
times out and contributes no sample.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable

from constants import (
    LATENCY_PROBE_INITIAL_DELAY_S,
    LATENCY_PROBE_INTERVAL_S,
    LATENCY_PROBE_TIMEOUT_S,
)
from observability.logger import log_event
from observability.metrics import discard_timer, start_timer, stop_timer
from peer.jitter import JitterBufferController
from protocol.messages import ping_message


SendJson = Callable[[dict[str, Any]], Awaitable[None]]


class LatencyProber:
    """Periodic PING/PONG sampler for one relay link."""

    def __init__(
        self,
        *,
        send_json: SendJson,
        jitter: JitterBufferController,
        interval_s: float = LATENCY_PROBE_INTERVAL_S,
        initial_delay_s: float = LATENCY_PROBE_INITIAL_DELAY_S,
        timeout_s: float = LATENCY_PROBE_TIMEOUT_S,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")

        self._send_json = send_json
        self._jitter = jitter
        self._interval_s = interval_s
        self._initial_delay_s = initial_delay_s
        self._timeout_s = timeout_s

        self._tokens = itertools.count(1)
        self._in_flight: dict[int, asyncio.Future[None]] = {}
        self._tasks: set[asyncio.Task[float | None]] = set()
        self._loop_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def probe(self) -> float | None:
        """
        Measure one round trip and feed it to the jitter buffer.

        Returns:
            RTT in seconds, or None if the ack did not arrive in time.
        """
        token = next(self._tokens)
        ack: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._in_flight[token] = ack

        timer_id = start_timer("latency_probe_rtt")
        try:
            await self._send_json(ping_message(token))
            await asyncio.wait_for(ack, timeout=self._timeout_s)
        except asyncio.TimeoutError:
            discard_timer(timer_id)
            log_event({
                "event_type": "LATENCY_PROBE_TIMEOUT",
                "probe": token,
                "timeout_s": self._timeout_s,
            })
            return None
        except BaseException:
            discard_timer(timer_id)
            raise
        finally:
            self._in_flight.pop(token, None)

        rtt_s = stop_timer(timer_id, details={"probe": token})
        if rtt_s is None:
            return None

        self._jitter.on_latency_sample(rtt_s)
        return rtt_s

    def on_pong(self, token: Any) -> bool:
        """
        Resolve the in-flight probe carrying `token`.

        Returns False for unknown or already-finished tokens.
        """
        if not isinstance(token, int):
            return False
        ack = self._in_flight.get(token)
        if ack is None or ack.done():
            return False
        ack.set_result(None)
        return True

    def start(self) -> None:
        """Begin periodic probing on the running loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run())

    async def run(self) -> None:
        """Early probe after the initial delay, then one per interval."""
        await asyncio.sleep(self._initial_delay_s)
        while True:
            self._spawn_probe()
            await asyncio.sleep(self._interval_s)

    async def stop(self) -> None:
        """Stop the schedule and abandon every in-flight probe."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _spawn_probe(self) -> None:
        task = asyncio.create_task(self._probe_logged())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _probe_logged(self) -> float | None:
        try:
            return await self.probe()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "LATENCY_PROBE_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return None
