"""
Relay / broadcast channel.

Responsibilities:
- Own the connection table (peer id -> connection)
- Send the identity notice to a newly connected peer
- Broadcast full membership snapshots on every connect/disconnect
- Fan out note events to every other open connection, tagged with the
  sender's relay-assigned id

Non-responsibilities:
- Never decodes, validates or stores event payloads
- No retries, no buffering for closed or slow targets
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from observability.logger import log_event
from protocol.messages import (
    encode_message,
    identity_message,
    membership_message,
    relayed_event_message,
)
from relay.registry import PeerRecord, PeerRegistry


@runtime_checkable
class Connection(Protocol):
    """Anything that can deliver a text frame (FastAPI WebSocket in practice)."""

    async def send_text(self, data: str) -> None: ...


class RelayHub:
    """
    One hub per relay process.

    All mutation happens on the event loop thread: connect() and
    disconnect() each complete their table update before the first await.
    """

    def __init__(self, registry: PeerRegistry | None = None) -> None:
        self._registry = registry or PeerRegistry()
        self._connections: dict[str, Connection] = {}

    @property
    def registry(self) -> PeerRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def connect(self, connection: Connection, origin_label: str) -> PeerRecord:
        """Register a connection, tell it its id, then broadcast membership."""
        record = self._registry.on_connect(origin_label)
        self._connections[record.peer_id] = connection

        log_event({
            "event_type": "PEER_CONNECTED",
            "peer_id": record.peer_id,
            "origin": record.origin_label,
            "hue": round(record.color.h),
            "peers": len(self._registry),
        })

        await self._send(record.peer_id, connection, identity_message(record.peer_id))
        await self.broadcast_membership()
        return record

    async def disconnect(self, peer_id: str) -> None:
        """Unregister a connection and broadcast the reduced membership."""
        self._connections.pop(peer_id, None)
        record = self._registry.on_disconnect(peer_id)
        if record is None:
            log_event({
                "event_type": "DISCONNECT_UNKNOWN_PEER",
                "peer_id": peer_id,
            })
            return

        log_event({
            "event_type": "PEER_DISCONNECTED",
            "peer_id": peer_id,
            "hue": round(record.color.h),
            "peers": len(self._registry),
        })

        await self.broadcast_membership()

    async def broadcast_membership(self) -> None:
        """Send the full snapshot (never a delta) to every open connection."""
        msg = membership_message(self._registry.membership())
        for peer_id, connection in list(self._connections.items()):
            await self._send(peer_id, connection, msg)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def relay_event(self, sender_id: str, payload: Any) -> int:
        """
        Forward an opaque payload to every connection except the sender.

        Returns:
            Number of successful deliveries.
        """
        msg = relayed_event_message(sender_id, payload)
        delivered = 0
        for peer_id, connection in list(self._connections.items()):
            if peer_id == sender_id:
                continue
            if await self._send(peer_id, connection, msg):
                delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def connected_ids(self) -> tuple[str, ...]:
        return tuple(self._connections)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _send(self, peer_id: str, connection: Connection, msg: dict[str, Any]) -> bool:
        """
        Best-effort send. A target that is already closed is skipped.
        """
        try:
            await connection.send_text(encode_message(msg))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "RELAY_SEND_SKIPPED",
                "peer_id": peer_id,
                "msg_type": msg.get("type"),
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return False
        return True
