# backend/protocol/binary.py
"""
Binary framing helpers for note events.

Layout (7 bytes, little-endian):
    1 byte   command            (u8, MIDI status byte)
    1 byte   note               (u8, 0..127)
    1 byte   velocity           (u8, 0..127)
    4 bytes  sender_event_time  (f32, seconds on the sender's own clock)

The relay never decodes these bytes. On the wire they travel base64
encoded inside the "m" field of a MIDI message, so only peers call
encode_note_payload / decode_note_payload.

Usage example:

    payload = encode_note_payload(event)
    ...
    try:
        event = decode_note_payload(msg["m"])
    except BinaryProtocolError as e:
        log_event({"event_type": "NOTE_DECODE_ERROR", "error": str(e)})
"""

from __future__ import annotations

import base64
import binascii
import math
import struct
from dataclasses import dataclass
from enum import Enum

from constants import (
    MIDI_COMMAND_MAX,
    MIDI_DATA_MAX,
    MIDI_NOTE_OFF,
    MIDI_NOTE_ON,
    MIDI_STATUS_MASK,
    NOTE_EVENT_BYTES_TOTAL,
    NOTE_EVENT_STRUCT,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for note payload errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when a note payload does not decode to exactly 7 bytes.

    The event is unsafe to interpret and must be dropped.
    """


class InvalidNoteField(BinaryProtocolError):
    """
    Raised when command, note, velocity or timestamp is outside its range.
    """


class InvalidTextEncoding(BinaryProtocolError):
    """
    Raised when the text-safe transport string is not valid base64.
    """


# -------------------------
# Data
# -------------------------

@dataclass(frozen=True)
class NoteEvent:
    """
    One note-on / note-off occurrence as seen by its sender.

    sender_event_time:
        Seconds on the sender's own local clock. Only comparable with
        other timestamps from the same sender.
    """
    command: int
    note: int
    velocity: int
    sender_event_time: float


class NoteAction(str, Enum):
    """What a command byte asks the renderer to do."""
    BEGIN = "begin"
    END = "end"
    IGNORE = "ignore"


def classify_command(command: int, velocity: int) -> NoteAction:
    """
    Map a MIDI status byte to a note action.

    0x9n with velocity > 0 begins a note; 0x9n with velocity 0 and 0x8n
    both end it. The channel nibble is ignored.
    """
    status = command & MIDI_STATUS_MASK
    if status == MIDI_NOTE_ON:
        return NoteAction.BEGIN if velocity > 0 else NoteAction.END
    if status == MIDI_NOTE_OFF:
        return NoteAction.END
    return NoteAction.IGNORE


# -------------------------
# Validation
# -------------------------

def validate_note_event(event: NoteEvent) -> None:
    """Raise InvalidNoteField if any field is outside its wire range."""
    if not 0 <= event.command <= MIDI_COMMAND_MAX:
        raise InvalidNoteField(f"Invalid command: {event.command}")
    if not 0 <= event.note <= MIDI_DATA_MAX:
        raise InvalidNoteField(f"Invalid note: {event.note}")
    if not 0 <= event.velocity <= MIDI_DATA_MAX:
        raise InvalidNoteField(f"Invalid velocity: {event.velocity}")
    if not math.isfinite(event.sender_event_time):
        raise InvalidNoteField(
            f"Invalid sender_event_time: {event.sender_event_time}"
        )


# -------------------------
# Bytes
# -------------------------

def encode_note_event(event: NoteEvent) -> bytes:
    """
    Encode a note event into its fixed 7-byte layout.

    The timestamp is narrowed to float32.
    """
    validate_note_event(event)

    try:
        payload = struct.pack(
            NOTE_EVENT_STRUCT,
            event.command,
            event.note,
            event.velocity,
            event.sender_event_time,
        )
    except OverflowError as e:
        raise InvalidNoteField(f"sender_event_time out of float32 range: {e}") from e

    if len(payload) != NOTE_EVENT_BYTES_TOTAL:
        raise InvalidFrameLength(
            f"Note frame length {len(payload)} != {NOTE_EVENT_BYTES_TOTAL}"
        )

    return payload


def decode_note_event(payload: bytes) -> NoteEvent:
    """
    Decode a 7-byte note event.
    """
    if len(payload) != NOTE_EVENT_BYTES_TOTAL:
        raise InvalidFrameLength(
            f"Note frame length {len(payload)} != {NOTE_EVENT_BYTES_TOTAL}"
        )

    command, note, velocity, sender_event_time = struct.unpack(
        NOTE_EVENT_STRUCT, payload
    )

    event = NoteEvent(
        command=command,
        note=note,
        velocity=velocity,
        sender_event_time=sender_event_time,
    )
    validate_note_event(event)
    return event


# -------------------------
# Text-safe transport
# -------------------------

def encode_note_payload(event: NoteEvent) -> str:
    """Encode a note event as the base64 string carried in a MIDI message."""
    return base64.b64encode(encode_note_event(event)).decode("ascii")


def decode_note_payload(text: object) -> NoteEvent:
    """
    Decode the base64 string carried in a MIDI message.

    Accepts any JSON value so callers can pass the raw "m" field; anything
    that is not a valid base64 string raises InvalidTextEncoding.
    """
    if not isinstance(text, str):
        raise InvalidTextEncoding(f"Expected str payload, got {type(text).__name__}")

    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidTextEncoding(f"Invalid base64 payload: {e}") from e

    return decode_note_event(raw)
