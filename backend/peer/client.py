"""
Peer runtime: one relay link plus the local sync/playback stack.

Responsibilities:
- Own the WebSocket link to the relay (reconnect with backoff)
- Track and surface connection status (DOWN | CONNECTING | UP)
- Route inbound control messages:
    YOUR_ID   -> local peer id
    USER_LIST -> roster snapshot (offsets dropped for vanished ids)
    MIDI      -> decode, then PlaybackDispatcher.schedule_remote
    PONG      -> LatencyProber.on_pong
- Send local notes to the relay stamped with the local clock

There is no replay: notes played while the link is down are heard
locally and never sent.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from constants import LATENCY_PROBE_INTERVAL_S, backoff_delay_s
from observability.logger import log_event
from peer.dispatcher import PlaybackDispatcher
from peer.jitter import JitterBufferController
from peer.prober import LatencyProber
from peer.renderers import NoteRenderer
from peer.roster import PeerRoster
from peer.timeline import PlaybackTimeline
from protocol.binary import (
    BinaryProtocolError,
    NoteEvent,
    decode_note_payload,
    encode_note_payload,
)
from protocol.messages import (
    MemberInfo,
    MessageFormatError,
    MessageType,
    encode_message,
    outbound_event_message,
    parse_message,
)
from session.connection_status import ConnectionStatus


StatusCallback = Callable[[ConnectionStatus], None]


def session_clock() -> Callable[[], float]:
    """
    Monotonic seconds since this call.

    Starting near zero keeps float32 wire timestamps precise for hours.
    """
    t0 = time.monotonic()
    return lambda: time.monotonic() - t0


class JamClient:
    """One participant's connection to the relay."""

    def __init__(
        self,
        *,
        url: str,
        renderer: NoteRenderer,
        clock: Callable[[], float] | None = None,
        on_status: StatusCallback | None = None,
        probe_interval_s: float = LATENCY_PROBE_INTERVAL_S,
    ) -> None:
        self._url = url
        self._clock = clock or session_clock()
        self._on_status = on_status

        self.roster = PeerRoster()
        self.jitter = JitterBufferController()
        self.timeline = PlaybackTimeline(clock=self._clock)
        self.dispatcher = PlaybackDispatcher(
            roster=self.roster,
            jitter=self.jitter,
            timeline=self.timeline,
            renderer=renderer,
            clock=self._clock,
        )
        self.prober = LatencyProber(
            send_json=self.send_json,
            jitter=self.jitter,
            interval_s=probe_interval_s,
        )

        self.status = ConnectionStatus.DOWN
        self._ws: ClientConnection | None = None
        self._closing = False

    @property
    def my_id(self) -> str | None:
        return self.dispatcher.local_peer_id

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, text: str) -> None:
        """Route one text frame from the relay. Never raises on bad input."""
        try:
            msg_type, data = parse_message(text)
        except MessageFormatError as e:
            log_event({
                "event_type": "JSON_DECODE_ERROR",
                "error": str(e),
                "payload_preview": text[:100],
            })
            return

        if msg_type is MessageType.MIDI:
            self._on_event(data)
        elif msg_type is MessageType.PONG:
            self.prober.on_pong(data.get("probe"))
        elif msg_type is MessageType.USER_LIST:
            self._on_membership(data)
        elif msg_type is MessageType.YOUR_ID:
            self._on_identity(data)
        else:
            log_event({
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": data.get("type"),
            })

    def _on_identity(self, data: dict[str, Any]) -> None:
        peer_id = data.get("id")
        if not isinstance(peer_id, str) or not peer_id:
            log_event({"event_type": "INVALID_IDENTITY", "id": repr(peer_id)})
            return
        self.dispatcher.local_peer_id = peer_id
        log_event({"event_type": "IDENTITY_ASSIGNED", "peer_id": peer_id})

    def _on_membership(self, data: dict[str, Any]) -> None:
        users = data.get("users")
        if not isinstance(users, list):
            log_event({"event_type": "INVALID_MEMBERSHIP", "users": repr(users)[:100]})
            return

        try:
            members = [MemberInfo.from_dict(u) for u in users]
        except MessageFormatError as e:
            # keep the previous snapshot; the next broadcast is a full list anyway
            log_event({"event_type": "INVALID_MEMBERSHIP", "error": str(e)})
            return

        change = self.roster.apply_membership(members)
        log_event({
            "event_type": "MEMBERSHIP_UPDATED",
            "peers": [m.peer_id for m in members],
            "added": list(change.added),
            "removed": list(change.removed),
        })

    def _on_event(self, data: dict[str, Any]) -> None:
        sender_id = data.get("s")
        if not isinstance(sender_id, str):
            log_event({"event_type": "EVENT_WITHOUT_SENDER"})
            return

        try:
            event = decode_note_payload(data.get("m"))
        except BinaryProtocolError as e:
            log_event({
                "event_type": "NOTE_DECODE_ERROR",
                "peer_id": sender_id,
                "error": str(e),
            })
            return

        self.dispatcher.schedule_remote(sender_id, event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_json(self, msg: dict[str, Any]) -> None:
        """
        Send one control message.

        Raises:
            ConnectionError if the relay link is down.
        """
        ws = self._ws
        if ws is None:
            raise ConnectionError("relay link is down")
        await ws.send(encode_message(msg))

    async def play_local(self, command: int, note: int, velocity: int) -> NoteEvent:
        """Play a note locally now and forward it to the relay if connected."""
        event = self.dispatcher.play_local(command, note, velocity)

        if self.status is not ConnectionStatus.UP:
            log_event({
                "event_type": "LOCAL_NOTE_NOT_SENT",
                "connection_status": self.status.value,
                "note": note,
            })
            return event

        try:
            await self.send_json(outbound_event_message(encode_note_payload(event)))
        except (ConnectionError, ConnectionClosed) as e:
            log_event({
                "event_type": "LOCAL_NOTE_NOT_SENT",
                "connection_status": self.status.value,
                "note": note,
                "error": str(e),
            })
        return event

    # ------------------------------------------------------------------
    # Link lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Keep a relay link open until close() is called."""
        self.timeline.bind(asyncio.get_running_loop())
        attempt = 0
        try:
            while not self._closing:
                self._set_status(ConnectionStatus.CONNECTING)
                try:
                    async with connect(self._url) as ws:
                        self._ws = ws
                        attempt = 0
                        self._set_status(ConnectionStatus.UP)
                        self.prober.start()
                        async for message in ws:
                            if isinstance(message, bytes):
                                log_event({
                                    "event_type": "BINARY_FRAME_IGNORED",
                                    "payload_len": len(message),
                                })
                                continue
                            self.handle_message(message)

                except (OSError, WebSocketException) as exc:
                    log_event({
                        "event_type": "RELAY_LINK_ERROR",
                        "url": self._url,
                        "exception": type(exc).__name__,
                        "message": str(exc),
                    })

                finally:
                    self._ws = None
                    await self.prober.stop()
                    self._on_link_lost()

                if self._closing:
                    break

                delay_s = backoff_delay_s(attempt)
                attempt += 1
                log_event({
                    "event_type": "RELAY_RECONNECT_SCHEDULED",
                    "attempt": attempt,
                    "delay_s": delay_s,
                })
                await asyncio.sleep(delay_s)
        finally:
            self._set_status(ConnectionStatus.DOWN)
            self.timeline.unbind()

    async def close(self) -> None:
        """Stop reconnecting, close the link and silence local playback."""
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()
        self.dispatcher.silence_all()

    def _on_link_lost(self) -> None:
        # a restarted relay hands out ids from the start again, so nothing
        # learned about the old ids (offsets included) can be trusted
        self.roster.clear()
        self.dispatcher.local_peer_id = None
        # ends that were in flight are gone with the link
        self.dispatcher.silence_all()
        self._set_status(ConnectionStatus.DOWN)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        log_event({
            "event_type": "CONNECTION_STATUS",
            "status": status.value,
            "url": self._url,
        })
        if self._on_status is not None:
            self._on_status(status)
