# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import struct

import pytest

from protocol.binary import (
    NoteAction,
    NoteEvent,
    classify_command,
    decode_note_event,
    decode_note_payload,
    encode_note_event,
    encode_note_payload,
    InvalidFrameLength,
    InvalidNoteField,
    InvalidTextEncoding,
)
from constants import NOTE_EVENT_BYTES_TOTAL


def make_event(**overrides) -> NoteEvent:
    fields = {
        "command": 0x90,
        "note": 60,
        "velocity": 100,
        "sender_event_time": 10.5,
    }
    fields.update(overrides)
    return NoteEvent(**fields)


# ---------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------

def test_encoded_event_is_seven_bytes_little_endian():
    raw = encode_note_event(make_event())

    assert len(raw) == NOTE_EVENT_BYTES_TOTAL
    assert raw[:3] == bytes([0x90, 60, 100])
    assert raw[3:] == struct.pack("<f", 10.5)


def test_payload_survives_text_transport():
    event = make_event(command=0x80, note=127, velocity=0, sender_event_time=3.25)

    text = encode_note_payload(event)

    assert isinstance(text, str)
    assert decode_note_payload(text) == event


def test_timestamp_is_narrowed_to_float32():
    event = make_event(sender_event_time=0.1)

    decoded = decode_note_event(encode_note_event(event))

    assert decoded.sender_event_time == struct.unpack("<f", struct.pack("<f", 0.1))[0]


# ---------------------------------------------------------------------
# Invalid frame lengths
# ---------------------------------------------------------------------

def test_decode_rejects_short_frame():
    raw = encode_note_event(make_event())[:-1]

    with pytest.raises(InvalidFrameLength):
        decode_note_event(raw)


def test_decode_rejects_long_frame():
    raw = encode_note_event(make_event()) + b"\x00"

    with pytest.raises(InvalidFrameLength):
        decode_note_event(raw)


# ---------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------

def test_decode_rejects_note_out_of_range():
    raw = struct.pack("<BBBf", 0x90, 200, 100, 1.0)

    with pytest.raises(InvalidNoteField):
        decode_note_event(raw)


def test_encode_rejects_velocity_out_of_range():
    with pytest.raises(InvalidNoteField):
        encode_note_event(make_event(velocity=128))


def test_encode_rejects_non_finite_time():
    with pytest.raises(InvalidNoteField):
        encode_note_event(make_event(sender_event_time=float("nan")))


# ---------------------------------------------------------------------
# Text encoding
# ---------------------------------------------------------------------

def test_decode_payload_rejects_non_string():
    with pytest.raises(InvalidTextEncoding):
        decode_note_payload({"command": 144})


def test_decode_payload_rejects_bad_base64():
    with pytest.raises(InvalidTextEncoding):
        decode_note_payload("not base64!!")


def test_decode_payload_rejects_wrong_length_after_base64():
    text = base64.b64encode(b"\x90\x3c").decode()

    with pytest.raises(InvalidFrameLength):
        decode_note_payload(text)


# ---------------------------------------------------------------------
# Command classification
# ---------------------------------------------------------------------

def test_note_on_with_velocity_begins():
    assert classify_command(0x90, 1) is NoteAction.BEGIN


def test_note_on_with_zero_velocity_ends():
    assert classify_command(0x90, 0) is NoteAction.END


def test_note_off_ends_regardless_of_velocity():
    assert classify_command(0x80, 64) is NoteAction.END


def test_channel_nibble_is_ignored():
    assert classify_command(0x9F, 10) is NoteAction.BEGIN
    assert classify_command(0x83, 10) is NoteAction.END


def test_other_status_is_ignored():
    assert classify_command(0xB0, 64) is NoteAction.IGNORE
