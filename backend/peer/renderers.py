"""
Renderer collaborator interface.

Audio synthesis and visual drawing live outside this package. The
dispatcher calls these four methods at computed local times and never
looks at how they are implemented.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from observability.logger import log_event


@runtime_checkable
class NoteRenderer(Protocol):
    """Audio + visual sink for scheduled notes."""

    def begin_note(self, note: int, velocity: int, scheduled_time: float) -> None: ...

    def end_note(self, note: int, scheduled_time: float) -> None: ...

    def set_visual_color(self, note: int, color_token: str) -> None: ...

    def clear_visual(self, note: int) -> None: ...


class LoggingRenderer:
    """Headless renderer: every call becomes one JSONL line."""

    def __init__(self, *, label: str = "renderer") -> None:
        self._label = label

    def begin_note(self, note: int, velocity: int, scheduled_time: float) -> None:
        log_event({
            "event_type": "NOTE_BEGIN",
            "renderer": self._label,
            "note": note,
            "velocity": velocity,
            "scheduled_time": round(scheduled_time, 6),
        })

    def end_note(self, note: int, scheduled_time: float) -> None:
        log_event({
            "event_type": "NOTE_END",
            "renderer": self._label,
            "note": note,
            "scheduled_time": round(scheduled_time, 6),
        })

    def set_visual_color(self, note: int, color_token: str) -> None:
        log_event({
            "event_type": "VISUAL_SET",
            "renderer": self._label,
            "note": note,
            "color": color_token,
        })

    def clear_visual(self, note: int) -> None:
        log_event({
            "event_type": "VISUAL_CLEAR",
            "renderer": self._label,
            "note": note,
        })
