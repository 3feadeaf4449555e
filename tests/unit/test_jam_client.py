# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

import pytest

import peer.client as client_mod
from peer.client import JamClient
from peer.clock import ClockOffset
from protocol.binary import NoteEvent, decode_note_payload, encode_note_payload
from protocol.messages import (
    HsvColor,
    MemberInfo,
    encode_message,
    identity_message,
    membership_message,
    pong_message,
    relayed_event_message,
)
from session.connection_status import ConnectionStatus


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRenderer:
    def __init__(self) -> None:
        self.calls = []

    def begin_note(self, note, velocity, scheduled_time):
        self.calls.append(("begin", note, velocity, scheduled_time))

    def end_note(self, note, scheduled_time):
        self.calls.append(("end", note, scheduled_time))

    def set_visual_color(self, note, color_token):
        self.calls.append(("color", note, color_token))

    def clear_visual(self, note):
        self.calls.append(("clear", note))


class FakeLink:
    def __init__(self) -> None:
        self.sent = []

    async def send(self, text):
        self.sent.append(json.loads(text))


@pytest.fixture
def events(monkeypatch):
    captured = []
    monkeypatch.setattr(client_mod, "log_event", captured.append)
    return captured


@pytest.fixture
def client():
    return JamClient(
        url="ws://relay.test/ws",
        renderer=FakeRenderer(),
        clock=FakeClock(10.15),
    )


def members(*peer_ids):
    return [
        MemberInfo(peer_id=p, origin_label="10.0.0.1", color=HsvColor(h=200.0, s=0.85, v=0.95))
        for p in peer_ids
    ]


def deliver(client: JamClient, msg) -> None:
    client.handle_message(encode_message(msg))


def midi_from(sender, command, note, velocity, t):
    event = NoteEvent(command=command, note=note, velocity=velocity, sender_event_time=t)
    return relayed_event_message(sender, encode_note_payload(event))


# ---------------------------------------------------------------------
# Inbound routing
# ---------------------------------------------------------------------

def test_identity_sets_local_id(client, events):
    deliver(client, identity_message("B"))

    assert client.my_id == "B"
    assert events[-1] == {"event_type": "IDENTITY_ASSIGNED", "peer_id": "B"}


def test_membership_snapshot_fills_roster(client, events):
    deliver(client, membership_message(tuple(members("A", "B"))))

    assert [p.peer_id for p in client.roster] == ["A", "B"]
    assert client.roster.get("A").origin_label == "10.0.0.1"
    assert events[-1]["added"] == ["A", "B"]


def test_remote_note_is_scheduled_with_offset(client, events):
    deliver(client, identity_message("B"))
    deliver(client, membership_message(tuple(members("A", "B"))))
    client.dispatcher.enable_audio()

    deliver(client, midi_from("A", 0x90, 60, 100, 10.0))

    peer = client.roster.get("A")
    assert peer.clock_offset.seconds == pytest.approx(0.25)
    assert client.timeline.next_due() == pytest.approx(10.25)

    client.timeline.run_due(10.25)
    assert client.dispatcher.sounding_notes() == frozenset({60})


def test_departed_peer_offset_is_forgotten(client, events):
    deliver(client, membership_message(tuple(members("A", "B"))))
    client.dispatcher.enable_audio()
    deliver(client, midi_from("A", 0x90, 60, 100, 10.0))
    assert client.roster.get("A").clock_offset.is_established

    deliver(client, membership_message(tuple(members("B"))))
    deliver(client, membership_message(tuple(members("A", "B"))))

    assert client.roster.get("A").clock_offset == ClockOffset.unset()
    assert events[-1]["added"] == ["A"]


def test_pong_is_routed_to_prober(client, monkeypatch):
    seen = []
    monkeypatch.setattr(client.prober, "on_pong", seen.append)

    deliver(client, pong_message(7))

    assert seen == [7]


def test_malformed_frames_are_logged_not_raised(client, events):
    client.handle_message("{not json")
    client.handle_message("[1, 2]")
    deliver(client, {"type": "MIDI", "s": "A", "m": "!!notbase64"})
    deliver(client, {"type": "MIDI", "m": "AAAA"})
    deliver(client, {"type": "USER_LIST", "users": "nope"})
    deliver(client, {"type": "YOUR_ID", "id": 5})
    deliver(client, {"type": "SOMETHING_ELSE"})

    kinds = [e["event_type"] for e in events]
    assert kinds == [
        "JSON_DECODE_ERROR",
        "JSON_DECODE_ERROR",
        "NOTE_DECODE_ERROR",
        "EVENT_WITHOUT_SENDER",
        "INVALID_MEMBERSHIP",
        "INVALID_IDENTITY",
        "UNKNOWN_MESSAGE_TYPE",
    ]


def test_bad_membership_entry_keeps_previous_snapshot(client, events):
    deliver(client, membership_message(tuple(members("A"))))

    deliver(client, {"type": "USER_LIST", "users": [{"id": "B"}]})

    assert "A" in client.roster
    assert "B" not in client.roster
    assert events[-1]["event_type"] == "INVALID_MEMBERSHIP"


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_send_json_requires_a_link(client):
    with pytest.raises(ConnectionError):
        asyncio.run(client.send_json({"type": "PING", "probe": 1}))


def test_local_note_while_down_plays_but_is_not_sent(client, events):
    event = asyncio.run(client.play_local(0x90, 60, 100))

    assert event.sender_event_time == 10.15
    assert client.dispatcher.sounding_notes() == frozenset({60})
    assert events[-1]["event_type"] == "LOCAL_NOTE_NOT_SENT"
    assert events[-1]["connection_status"] == "DOWN"


def test_local_note_while_up_is_sent_stamped(client):
    link = FakeLink()
    client._ws = link  # pylint: disable=protected-access
    client.status = ConnectionStatus.UP

    asyncio.run(client.play_local(0x90, 64, 90))

    assert len(link.sent) == 1
    assert link.sent[0]["type"] == "MIDI"
    assert "s" not in link.sent[0]
    sent = decode_note_payload(link.sent[0]["m"])
    assert (sent.command, sent.note, sent.velocity) == (0x90, 64, 90)
    assert sent.sender_event_time == pytest.approx(10.15, abs=1e-5)


# ---------------------------------------------------------------------
# Link lifecycle
# ---------------------------------------------------------------------

def test_link_loss_resets_identity_and_roster(events):
    statuses = []
    client = JamClient(
        url="ws://relay.test/ws",
        renderer=FakeRenderer(),
        clock=FakeClock(1.0),
        on_status=statuses.append,
    )
    client._set_status(ConnectionStatus.UP)  # pylint: disable=protected-access
    deliver(client, identity_message("A"))
    deliver(client, membership_message(tuple(members("A", "B"))))

    client._on_link_lost()  # pylint: disable=protected-access

    assert client.my_id is None
    assert len(client.roster) == 0
    assert client.status is ConnectionStatus.DOWN
    assert statuses == [ConnectionStatus.UP, ConnectionStatus.DOWN]


def test_close_silences_local_playback(client):
    asyncio.run(client.play_local(0x90, 60, 100))

    asyncio.run(client.close())

    assert client.dispatcher.sounding_notes() == frozenset()
    assert client.timeline.pending_count() == 0


def test_link_loss_releases_sounding_remote_notes():
    renderer = FakeRenderer()
    client = JamClient(url="ws://relay.test/ws", renderer=renderer, clock=FakeClock(5.0))
    deliver(client, identity_message("B"))
    deliver(client, membership_message(tuple(members("A", "B"))))
    client.dispatcher.enable_audio()
    client.roster.get("A").clock_offset = ClockOffset.established(0.0)

    deliver(client, midi_from("A", 0x90, 60, 100, 5.0))
    deliver(client, midi_from("A", 0x90, 62, 100, 7.0))
    assert client.dispatcher.sounding_notes() == frozenset({60})

    client._on_link_lost()  # pylint: disable=protected-access

    assert client.dispatcher.sounding_notes() == frozenset()
    assert client.timeline.pending_count() == 0
    assert ("end", 60, 5.0) in renderer.calls
