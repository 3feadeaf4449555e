"""
Scheduled playback dispatcher.

Responsibilities:
- Turn a remote note event into an absolute local fire time:
      scheduled = sender_event_time + peer offset   (offset includes jitter)
- Apply safety clamps:
      scheduled > now + SCHEDULE_MAX_AHEAD_S  -> drop (clock anomaly)
      scheduled < now                         -> clamp to now (late)
- Schedule our own notes at "now" and stamp them for transmission
- Call the renderer at the fire time, keeping begin/end idempotent
- Cancel a still-pending begin overtaken by an end for the same note

Non-responsibilities:
- No sockets (peer.client owns the relay link)
- No synthesis or drawing (peer.renderers)

Nothing here raises on bad input from the network: every rejected event
becomes a ScheduleDecision with a DROPPED_* outcome and a log line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from constants import (
    LOCAL_FALLBACK_COLOR_CSS,
    LOCAL_SENDER_LABEL,
    SCHEDULE_MAX_AHEAD_S,
)
from observability.logger import log_event
from peer.clock import estimate_offset_if_absent
from peer.jitter import JitterBufferController
from peer.renderers import NoteRenderer
from peer.roster import PeerRoster
from peer.timeline import PlaybackTimeline, ScheduledHandle
from protocol.binary import NoteAction, NoteEvent, classify_command, validate_note_event


class ScheduleOutcome(str, Enum):
    """Result of handing one event to the dispatcher."""
    SCHEDULED = "scheduled"
    SCHEDULED_LATE = "scheduled_late"
    IGNORED_COMMAND = "ignored_command"
    DROPPED_TOO_FAR_AHEAD = "dropped_too_far_ahead"
    DROPPED_UNKNOWN_SENDER = "dropped_unknown_sender"
    DROPPED_AUDIO_NOT_READY = "dropped_audio_not_ready"
    DROPPED_OWN_ECHO = "dropped_own_echo"


@dataclass(frozen=True)
class ScheduleDecision:
    """What happened to one event, for callers and tests."""
    outcome: ScheduleOutcome
    scheduled_time: float | None = None
    offset_s: float | None = None
    handle: ScheduledHandle | None = field(default=None, compare=False)

    @property
    def scheduled(self) -> bool:
        return self.outcome in (ScheduleOutcome.SCHEDULED, ScheduleOutcome.SCHEDULED_LATE)


class PlaybackDispatcher:
    """
    One dispatcher per local client.

    Sounding notes are tracked per note number (one shared keyboard), so a
    begin over a sounding note ends the old one first and an end for a
    silent note does nothing.
    """

    def __init__(
        self,
        *,
        roster: PeerRoster,
        jitter: JitterBufferController,
        timeline: PlaybackTimeline,
        renderer: NoteRenderer,
        clock: Callable[[], float],
    ) -> None:
        self._roster = roster
        self._jitter = jitter
        self._timeline = timeline
        self._renderer = renderer
        self._clock = clock

        self.local_peer_id: str | None = None
        self._audio_ready = False

        self._sounding: set[int] = set()
        # (sender, note) -> latest begin not yet fired
        self._pending_begins: dict[tuple[str, int], ScheduledHandle] = {}

    # ------------------------------------------------------------------
    # Playback readiness
    # ------------------------------------------------------------------

    @property
    def audio_ready(self) -> bool:
        return self._audio_ready

    def enable_audio(self) -> None:
        """Mark local playback as initialised. Remote events are dropped until then."""
        if not self._audio_ready:
            self._audio_ready = True
            log_event({"event_type": "AUDIO_READY"})

    def sounding_notes(self) -> frozenset[int]:
        return frozenset(self._sounding)

    # ------------------------------------------------------------------
    # Local input
    # ------------------------------------------------------------------

    def play_local(self, command: int, note: int, velocity: int) -> NoteEvent:
        """
        Play our own note now and return it stamped with our clock.

        The returned event is what gets transmitted to the relay; remote
        peers run their offset estimation against its timestamp.

        Raises:
            InvalidNoteField if a field is outside its wire range.
        """
        now = self._clock()
        event = NoteEvent(
            command=command,
            note=note,
            velocity=velocity,
            sender_event_time=now,
        )
        validate_note_event(event)

        # Local input counts as the user gesture that starts playback
        self.enable_audio()

        action = classify_command(command, velocity)
        log_event({
            "event_type": "LOCAL_NOTE",
            "action": action.value,
            "note": note,
            "velocity": velocity,
            "sender_event_time": now,
            "jitter_buffer_s": self._jitter.buffer_s,
        })

        if action is not NoteAction.IGNORE:
            sender = self.local_peer_id or LOCAL_SENDER_LABEL
            self._schedule_action(sender, event, action, now, self._local_color())
            self._timeline.run_due(now)

        return event

    # ------------------------------------------------------------------
    # Remote input
    # ------------------------------------------------------------------

    def schedule_remote(self, sender_id: str, event: NoteEvent) -> ScheduleDecision:
        """Schedule a relayed event from another peer."""
        if self.local_peer_id is not None and sender_id == self.local_peer_id:
            return self._drop(ScheduleOutcome.DROPPED_OWN_ECHO, sender_id, event)

        if not self._audio_ready:
            return self._drop(ScheduleOutcome.DROPPED_AUDIO_NOT_READY, sender_id, event)

        peer = self._roster.get(sender_id)
        if peer is None:
            return self._drop(ScheduleOutcome.DROPPED_UNKNOWN_SENDER, sender_id, event)

        now = self._clock()
        was_established = peer.clock_offset.is_established
        offset = estimate_offset_if_absent(
            peer,
            event.sender_event_time,
            now,
            self._jitter.buffer_s,
        )
        if not was_established:
            log_event({
                "event_type": "CLOCK_OFFSET_ESTABLISHED",
                "peer_id": sender_id,
                "offset_s": offset,
                "jitter_buffer_s": self._jitter.buffer_s,
            })

        scheduled = event.sender_event_time + offset

        if scheduled > now + SCHEDULE_MAX_AHEAD_S:
            log_event({
                "event_type": "EVENT_DROPPED",
                "reason": ScheduleOutcome.DROPPED_TOO_FAR_AHEAD.value,
                "peer_id": sender_id,
                "note": event.note,
                "ahead_s": scheduled - now,
            })
            return ScheduleDecision(
                outcome=ScheduleOutcome.DROPPED_TOO_FAR_AHEAD,
                scheduled_time=scheduled,
                offset_s=offset,
            )

        outcome = ScheduleOutcome.SCHEDULED
        if scheduled < now:
            log_event({
                "event_type": "EVENT_LATE_CLAMPED",
                "peer_id": sender_id,
                "note": event.note,
                "late_s": now - scheduled,
            })
            scheduled = now
            outcome = ScheduleOutcome.SCHEDULED_LATE

        action = classify_command(event.command, event.velocity)
        if action is NoteAction.IGNORE:
            return ScheduleDecision(
                outcome=ScheduleOutcome.IGNORED_COMMAND,
                scheduled_time=scheduled,
                offset_s=offset,
            )

        handle = self._schedule_action(sender_id, event, action, scheduled, peer.css_color)
        if scheduled <= now:
            self._timeline.run_due(now)

        return ScheduleDecision(
            outcome=outcome,
            scheduled_time=scheduled,
            offset_s=offset,
            handle=handle,
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def silence_all(self) -> None:
        """Cancel pending playback and end every sounding note now."""
        self._timeline.clear()
        self._pending_begins.clear()
        now = self._clock()
        for note in sorted(self._sounding):
            self._renderer.end_note(note, now)
            self._renderer.clear_visual(note)
        self._sounding.clear()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _schedule_action(
        self,
        sender_id: str,
        event: NoteEvent,
        action: NoteAction,
        when: float,
        color: str,
    ) -> ScheduledHandle:
        key = (sender_id, event.note)
        note = event.note

        if action is NoteAction.BEGIN:
            velocity = event.velocity
            handle = self._timeline.schedule_at(
                when,
                lambda t: self._fire_begin(key, note, velocity, color, t),
                label=f"begin:{sender_id}:{note}",
            )
            self._pending_begins[key] = handle
            return handle

        # With one fixed offset per sender and non-decreasing sender times an
        # end never lands before its begin, and the timeline already orders
        # the pair. This only triggers when a sender's clock steps backwards.
        pending = self._pending_begins.get(key)
        if pending is not None and pending.pending and pending.when > when:
            pending.cancel()
            del self._pending_begins[key]
            log_event({
                "event_type": "PENDING_BEGIN_CANCELLED",
                "peer_id": sender_id,
                "note": note,
                "begin_at": pending.when,
                "end_at": when,
            })

        return self._timeline.schedule_at(
            when,
            lambda t: self._fire_end(note, t),
            label=f"end:{sender_id}:{note}",
        )

    def _fire_begin(
        self,
        key: tuple[str, int],
        note: int,
        velocity: int,
        color: str,
        when: float,
    ) -> None:
        stored = self._pending_begins.get(key)
        if stored is not None and stored.fired:
            del self._pending_begins[key]

        if note in self._sounding:
            # release the previous voice before starting a new one
            self._renderer.end_note(note, when)
        self._renderer.begin_note(note, velocity, when)
        self._renderer.set_visual_color(note, color)
        self._sounding.add(note)

    def _fire_end(self, note: int, when: float) -> None:
        if note not in self._sounding:
            return
        self._renderer.end_note(note, when)
        self._renderer.clear_visual(note)
        self._sounding.discard(note)

    def _local_color(self) -> str:
        if self.local_peer_id is not None:
            me = self._roster.get(self.local_peer_id)
            if me is not None:
                return me.css_color
        return LOCAL_FALLBACK_COLOR_CSS

    def _drop(self, outcome: ScheduleOutcome, sender_id: str, event: NoteEvent) -> ScheduleDecision:
        log_event({
            "event_type": "EVENT_DROPPED",
            "reason": outcome.value,
            "peer_id": sender_id,
            "note": event.note,
        })
        return ScheduleDecision(outcome=outcome)
