"""
JSON control messages exchanged between peers and the relay.

Every text frame is one JSON object with a "type" discriminator:

    relay -> new peer   {"type": "YOUR_ID", "id": "B"}
    relay -> all        {"type": "USER_LIST", "users": [{"id", "origin", "color"}]}
    peer  -> relay      {"type": "MIDI", "m": <opaque>}
    relay -> others     {"type": "MIDI", "s": "B", "m": <opaque>}
    peer  -> relay      {"type": "PING", "probe": 7}
    relay -> peer       {"type": "PONG", "probe": 7}

The "m" value is opaque to the relay. Builders here never look inside it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class MessageType(str, Enum):
    """Canonical control message types."""
    YOUR_ID = "YOUR_ID"
    USER_LIST = "USER_LIST"
    MIDI = "MIDI"
    PING = "PING"
    PONG = "PONG"


class MessageFormatError(ValueError):
    """Raised when a control message is not a JSON object with a known shape."""


# ------------------------------------------------------------------
# Colors
# ------------------------------------------------------------------

@dataclass(frozen=True)
class HsvColor:
    """
    Display color assigned by the relay.

    h: hue in degrees [0, 360)
    s: saturation [0, 1]
    v: value/brightness [0, 1]
    """
    h: float
    s: float
    v: float

    def to_dict(self) -> dict[str, float]:
        return {"h": self.h, "s": self.s, "v": self.v}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> HsvColor:
        try:
            return HsvColor(h=float(data["h"]), s=float(data["s"]), v=float(data["v"]))
        except (KeyError, TypeError, ValueError) as e:
            raise MessageFormatError(f"Invalid color: {data!r}") from e


def hsv_to_hsl_css(color: HsvColor) -> str:
    """
    Convert an HSV color to a CSS hsl() string.

    l = v * (1 - s/2); s_hsl = (v - l) / min(l, 1 - l), or 0 at the extremes.
    """
    lightness = color.v * (1 - color.s / 2)
    if lightness in (0, 1):
        s_hsl = 0.0
    else:
        s_hsl = (color.v - lightness) / min(lightness, 1 - lightness)
    return f"hsl({color.h}, {s_hsl * 100}%, {lightness * 100}%)"


# ------------------------------------------------------------------
# Membership entries
# ------------------------------------------------------------------

@dataclass(frozen=True)
class MemberInfo:
    """One entry of a membership snapshot."""
    peer_id: str
    origin_label: str
    color: HsvColor

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.peer_id,
            "origin": self.origin_label,
            "color": self.color.to_dict(),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> MemberInfo:
        try:
            peer_id = data["id"]
            origin = data["origin"]
            color = data["color"]
        except (KeyError, TypeError) as e:
            raise MessageFormatError(f"Invalid member entry: {data!r}") from e

        if not isinstance(peer_id, str) or not isinstance(color, Mapping):
            raise MessageFormatError(f"Invalid member entry: {data!r}")

        return MemberInfo(
            peer_id=peer_id,
            origin_label=str(origin),
            color=HsvColor.from_dict(color),
        )


# ------------------------------------------------------------------
# Builders
# ------------------------------------------------------------------

def identity_message(peer_id: str) -> dict[str, Any]:
    return {"type": MessageType.YOUR_ID.value, "id": peer_id}


def membership_message(members: tuple[MemberInfo, ...]) -> dict[str, Any]:
    return {
        "type": MessageType.USER_LIST.value,
        "users": [m.to_dict() for m in members],
    }


def outbound_event_message(payload: Any) -> dict[str, Any]:
    """Peer -> relay note event."""
    return {"type": MessageType.MIDI.value, "m": payload}


def relayed_event_message(sender_id: str, payload: Any) -> dict[str, Any]:
    """Relay -> peers note event, tagged with the relay-known sender."""
    return {"type": MessageType.MIDI.value, "s": sender_id, "m": payload}


def ping_message(probe: int) -> dict[str, Any]:
    return {"type": MessageType.PING.value, "probe": probe}


def pong_message(probe: Any) -> dict[str, Any]:
    return {"type": MessageType.PONG.value, "probe": probe}


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------

def encode_message(msg: Mapping[str, Any]) -> str:
    return json.dumps(msg, separators=(",", ":"))


def parse_message(text: str) -> tuple[MessageType | None, dict[str, Any]]:
    """
    Parse a text frame.

    Returns (message_type, body). message_type is None for an unknown
    "type" value so callers can log and ignore it.

    Raises:
        MessageFormatError if the frame is not a JSON object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MessageFormatError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageFormatError("Control message must be a JSON object")

    try:
        msg_type: MessageType | None = MessageType(data.get("type"))
    except ValueError:
        msg_type = None

    return msg_type, data
