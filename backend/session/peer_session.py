"""
Relay-side session container.

- One PeerSession per accepted WebSocket
- Owned and mutated by PeerGateway
- NOT a state machine
- Contains no relay logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from session.connection_status import ConnectionStatus


@dataclass
class PeerSession:
    """Mutable bookkeeping for a single relay connection."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    peer_id: str
    origin_label: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.UP

    # ------------------------------------------------------------------
    # Counters (observability only)
    # ------------------------------------------------------------------

    events_relayed: int = 0
    probes_answered: int = 0
    messages_ignored: int = 0

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "peer_id": self.peer_id,
            "origin": self.origin_label,
            "connection_status": self.connection_status.value,
        }

    def summary(self) -> dict[str, Any]:
        """Lifetime counters, logged on disconnect."""
        return {
            **self.log_context(),
            "duration_s": round(time.time() - self.created_at, 3),
            "events_relayed": self.events_relayed,
            "probes_answered": self.probes_answered,
            "messages_ignored": self.messages_ignored,
        }
