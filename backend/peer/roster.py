"""
Peer-side view of session membership.

Built from the relay's full membership snapshots. Ids that stay in the
snapshot keep their state (notably the clock offset); ids that drop out
are forgotten together with their offset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from peer.clock import ClockOffset
from protocol.messages import HsvColor, MemberInfo, hsv_to_hsl_css


@dataclass
class RemotePeer:
    """One participant as known to this client."""

    peer_id: str
    origin_label: str
    color: HsvColor
    clock_offset: ClockOffset = field(default_factory=ClockOffset.unset)
    css_color: str = field(init=False)

    def __post_init__(self) -> None:
        # color never changes for a connection; derive the CSS form once
        self.css_color = hsv_to_hsl_css(self.color)


@dataclass(frozen=True)
class MembershipChange:
    """Ids added and removed by one snapshot."""
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()


class PeerRoster:
    """Ordered table of known peers (self included)."""

    def __init__(self) -> None:
        self._peers: dict[str, RemotePeer] = {}

    def apply_membership(self, members: Iterable[MemberInfo]) -> MembershipChange:
        """
        Replace the table with a full snapshot.

        Surviving ids keep their RemotePeer object; order follows the snapshot.
        """
        previous = self._peers
        updated: dict[str, RemotePeer] = {}
        added: list[str] = []

        for member in members:
            existing = previous.get(member.peer_id)
            if existing is not None:
                updated[member.peer_id] = existing
                continue
            updated[member.peer_id] = RemotePeer(
                peer_id=member.peer_id,
                origin_label=member.origin_label,
                color=member.color,
            )
            added.append(member.peer_id)

        removed = tuple(pid for pid in previous if pid not in updated)
        self._peers = updated
        return MembershipChange(added=tuple(added), removed=removed)

    def clear(self) -> None:
        """Forget everyone (relay link lost; ids will not come back)."""
        self._peers = {}

    def get(self, peer_id: str) -> RemotePeer | None:
        return self._peers.get(peer_id)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)

    def __iter__(self) -> Iterator[RemotePeer]:
        return iter(list(self._peers.values()))
