# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import time

import peer.timeline as timeline_mod
from peer.timeline import PlaybackTimeline


def make_timeline(now: float = 0.0) -> PlaybackTimeline:
    return PlaybackTimeline(clock=lambda: now)


def test_fires_in_time_order():
    tl = make_timeline()
    fired = []

    tl.schedule_at(3.0, lambda t: fired.append(("c", t)))
    tl.schedule_at(1.0, lambda t: fired.append(("a", t)))
    tl.schedule_at(2.0, lambda t: fired.append(("b", t)))

    assert tl.run_due(5.0) == 3
    assert fired == [("a", 1.0), ("b", 2.0), ("c", 3.0)]


def test_equal_times_fire_in_insertion_order():
    tl = make_timeline()
    fired = []

    for name in "xyz":
        tl.schedule_at(1.0, lambda t, name=name: fired.append(name))

    tl.run_due(1.0)

    assert fired == ["x", "y", "z"]


def test_only_due_entries_fire():
    tl = make_timeline()
    fired = []
    tl.schedule_at(1.0, fired.append)
    tl.schedule_at(2.0, fired.append)

    assert tl.run_due(1.5) == 1
    assert fired == [1.0]
    assert tl.next_due() == 2.0
    assert tl.pending_count() == 1


def test_cancelled_entry_never_fires():
    tl = make_timeline()
    fired = []
    handle = tl.schedule_at(1.0, fired.append)

    assert handle.cancel() is True
    assert handle.cancel() is False

    assert tl.run_due(10.0) == 0
    assert fired == []
    assert tl.next_due() is None


def test_cannot_cancel_after_fire():
    tl = make_timeline()
    handle = tl.schedule_at(1.0, lambda t: None)
    tl.run_due(1.0)

    assert handle.fired
    assert handle.cancel() is False
    assert not handle.cancelled


def test_clear_cancels_everything():
    tl = make_timeline()
    handles = [tl.schedule_at(float(i), lambda t: None) for i in range(3)]

    tl.clear()

    assert all(h.cancelled for h in handles)
    assert len(tl) == 0
    assert tl.run_due(100.0) == 0


def test_callback_error_does_not_stop_later_entries(monkeypatch):
    events = []
    monkeypatch.setattr(timeline_mod, "log_event", events.append)

    tl = make_timeline()
    fired = []

    def boom(_t):
        raise RuntimeError("renderer exploded")

    tl.schedule_at(1.0, boom, label="bad")
    tl.schedule_at(2.0, fired.append)

    assert tl.run_due(2.0) == 2
    assert fired == [2.0]
    assert events[0]["event_type"] == "TIMELINE_CALLBACK_ERROR"
    assert events[0]["label"] == "bad"


def test_bound_loop_fires_without_manual_polling():
    async def scenario():
        t0 = time.monotonic()
        def clock():
            return time.monotonic() - t0

        tl = PlaybackTimeline(clock=clock)
        fired = []

        tl.bind(asyncio.get_running_loop())
        tl.schedule_at(clock() + 0.02, lambda t: fired.append(("late", t)))
        tl.schedule_at(clock() + 0.01, lambda t: fired.append(("early", t)))

        await asyncio.sleep(0.2)
        tl.unbind()
        return fired

    fired = asyncio.run(scenario())

    assert [name for name, _ in fired] == ["early", "late"]
