"""
Identity & session registry (relay side).

Responsibilities:
- Assign each connection a compact id
- Assign each connection a random vivid display color
- Track per-connection metadata (origin label, color)
- Produce full, ordered membership snapshots

Non-responsibilities:
- No sockets, no sending (see relay.hub)
- No knowledge of note events
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field

from constants import (
    COLOR_HUE_RANGE,
    COLOR_SATURATION_RANGE,
    COLOR_VALUE_RANGE,
    IPV4_MAPPED_PREFIX,
    UNKNOWN_ORIGIN_LABEL,
)
from protocol.messages import HsvColor, MemberInfo
from relay.short_ids import ShortIdAllocator


def normalize_origin(host: str | None) -> str:
    """Human-readable origin for a remote host; IPv4-mapped IPv6 is unwrapped."""
    if not host:
        return UNKNOWN_ORIGIN_LABEL
    if host.startswith(IPV4_MAPPED_PREFIX):
        return host[len(IPV4_MAPPED_PREFIX):]
    return host


def random_color(rng: random.Random) -> HsvColor:
    """Hue uniform over the wheel; saturation and value kept high."""
    return HsvColor(
        h=_uniform_half_open(rng, COLOR_HUE_RANGE),
        s=_uniform_half_open(rng, COLOR_SATURATION_RANGE),
        v=_uniform_half_open(rng, COLOR_VALUE_RANGE),
    )


def _uniform_half_open(rng: random.Random, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return low + rng.random() * (high - low)


@dataclass(frozen=True)
class PeerRecord:
    """Relay-side metadata for one open connection. Immutable for its lifetime."""
    peer_id: str
    origin_label: str
    color: HsvColor
    connected_at: float = field(default_factory=time.time)

    def member_info(self) -> MemberInfo:
        return MemberInfo(
            peer_id=self.peer_id,
            origin_label=self.origin_label,
            color=self.color,
        )


class PeerRegistry:
    """
    Explicit table of open connections, keyed by peer id.

    Connect and disconnect are the only mutation points.
    """

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._ids = ShortIdAllocator()
        # insertion order == connect order
        self._peers: dict[str, PeerRecord] = {}

    def on_connect(self, origin_label: str) -> PeerRecord:
        record = PeerRecord(
            peer_id=self._ids.allocate(),
            origin_label=origin_label,
            color=random_color(self._rng),
        )
        self._peers[record.peer_id] = record
        return record

    def on_disconnect(self, peer_id: str) -> PeerRecord | None:
        """Remove a peer. Unknown ids return None (already gone)."""
        return self._peers.pop(peer_id, None)

    def get(self, peer_id: str) -> PeerRecord | None:
        return self._peers.get(peer_id)

    def membership(self) -> tuple[MemberInfo, ...]:
        """Full snapshot in connect order."""
        return tuple(record.member_info() for record in self._peers.values())

    def peer_ids(self) -> tuple[str, ...]:
        return tuple(self._peers)

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers
