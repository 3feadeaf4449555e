"""
Peer gateway (relay side, one per WebSocket).

Responsibilities:
- Owns the PeerSession lifecycle
- Registers / unregisters the connection with the RelayHub
- Routes inbound JSON control messages:
    MIDI -> hub fan-out (payload untouched)
    PING -> immediate PONG on this connection
- Logs and ignores malformed or unknown messages and binary frames

NOT responsible for:
- Decoding note payloads
- Any timing or scheduling decisions (those live at the peers)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from observability.logger import log_event
from observability.metrics import timed
from protocol.messages import (
    MessageFormatError,
    MessageType,
    parse_message,
    pong_message,
)
from relay.hub import Connection, RelayHub
from session.connection_status import ConnectionStatus
from session.peer_session import PeerSession


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send back on this connection only.
        Fan-out to other peers goes through the hub, not through here.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# PeerGateway
# ------------------------------------------------------------------

class PeerGateway:
    """One gateway == one relay connection."""

    def __init__(self, *, hub: RelayHub) -> None:
        self._hub = hub
        self.session: PeerSession | None = None

    async def on_ws_connect(self, connection: Connection, origin_label: str) -> GatewayResult:
        """
        Called once the WebSocket is accepted.

        The hub sends the identity notice and the membership broadcast
        itself, so nothing is returned for the caller to flush.
        """
        record = await self._hub.connect(connection, origin_label)
        self.session = PeerSession(
            peer_id=record.peer_id,
            origin_label=record.origin_label,
        )
        return GatewayResult()

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """Called when the WebSocket closes, for any reason."""
        if self.session is None:
            log_event({
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return

        self.session.connection_status = ConnectionStatus.DOWN
        log_event({
            "event_type": "SESSION_ENDED",
            "reason": reason,
            **self.session.summary(),
        })

        await self._hub.disconnect(self.session.peer_id)

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        """Binary frames are not part of the relay protocol; log and keep the connection."""
        if self.session is not None:
            self.session.messages_ignored += 1
        log_event({
            "event_type": "BINARY_FRAME_IGNORED",
            **(self.session.log_context() if self.session else {}),
            "payload_len": len(payload),
        })
        return GatewayResult()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route one inbound text frame."""
        if self.session is None:
            log_event({
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        try:
            msg_type, data = parse_message(payload)
        except MessageFormatError as e:
            self.session.messages_ignored += 1
            log_event({
                "event_type": "JSON_DECODE_ERROR",
                **self.session.log_context(),
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if msg_type is MessageType.MIDI:
            # Sender identity comes from the connection, never from the payload
            with timed("relay_fanout", peer_id=self.session.peer_id):
                await self._hub.relay_event(self.session.peer_id, data.get("m"))
            self.session.events_relayed += 1
            return GatewayResult()

        if msg_type is MessageType.PING:
            self.session.probes_answered += 1
            return GatewayResult(outbound_json=(pong_message(data.get("probe")),))

        self.session.messages_ignored += 1
        log_event({
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            **self.session.log_context(),
            "msg_type": data.get("type"),
        })
        return GatewayResult()
