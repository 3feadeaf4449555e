"""
Per-peer clock offset estimation.

Maps a sender's event timeline onto the local playback timeline with a
single additive offset, established from the first event ever received
from that peer id:

    offset = local_receive_time - sender_event_time + jitter_buffer_s

The offset is never re-estimated for the same id, so playback of a peer
cannot jump mid-session. Clock drift over a session is small next to the
jitter buffer. A reconnecting peer arrives with a new id and a fresh,
unset offset.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class OffsetState(str, Enum):
    UNSET = "unset"
    ESTABLISHED = "established"


@dataclass(frozen=True)
class ClockOffset:
    """Either UNSET or ESTABLISHED(seconds). Set once, read thereafter."""
    state: OffsetState = OffsetState.UNSET
    seconds: float = 0.0

    @staticmethod
    def unset() -> ClockOffset:
        return ClockOffset()

    @staticmethod
    def established(seconds: float) -> ClockOffset:
        return ClockOffset(state=OffsetState.ESTABLISHED, seconds=seconds)

    @property
    def is_established(self) -> bool:
        return self.state is OffsetState.ESTABLISHED


class HasClockOffset(Protocol):
    clock_offset: ClockOffset


class OffsetAlreadyEstablished(RuntimeError):
    """Raised on an attempt to overwrite an established offset."""


def establish_offset(peer: HasClockOffset, seconds: float) -> ClockOffset:
    """Set the offset of a peer whose offset is still UNSET."""
    if peer.clock_offset.is_established:
        raise OffsetAlreadyEstablished(
            f"offset already established ({peer.clock_offset.seconds})"
        )
    peer.clock_offset = ClockOffset.established(seconds)
    return peer.clock_offset


def estimate_offset_if_absent(
    peer: HasClockOffset,
    sender_event_time: float,
    local_receive_time: float,
    jitter_buffer_s: float,
) -> float:
    """
    Return the peer's offset, establishing it from this event if UNSET.

    The jitter buffer term is baked in here once; later calls ignore
    both the event times and the current buffer.
    """
    if peer.clock_offset.is_established:
        return peer.clock_offset.seconds

    offset = local_receive_time - sender_event_time + jitter_buffer_s
    return establish_offset(peer, offset).seconds
