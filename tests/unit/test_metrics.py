# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import pytest

from observability import logger, metrics


@pytest.fixture
def lines(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    return captured


def test_stop_timer_returns_seconds_and_emits_metric(lines):
    timer_id = metrics.start_timer("probe")

    duration_s = metrics.stop_timer(timer_id, peer_id="B")

    assert duration_s is not None and duration_s >= 0.0
    assert len(lines) == 1
    event = json.loads(lines[0])
    assert event["event_type"] == "METRIC_TIMER"
    assert event["metric"] == "probe"
    assert event["peer_id"] == "B"


def test_stop_timer_twice_returns_none(lines):
    timer_id = metrics.start_timer("probe")
    metrics.stop_timer(timer_id)

    assert metrics.stop_timer(timer_id) is None
    assert len(lines) == 1


def test_discard_timer_emits_nothing(lines):
    before = metrics.active_timer_count()
    timer_id = metrics.start_timer("probe")

    metrics.discard_timer(timer_id)

    assert metrics.active_timer_count() == before
    assert lines == []


def test_timed_stops_timer_on_exception(lines):
    before = metrics.active_timer_count()

    with pytest.raises(RuntimeError):
        with metrics.timed("broken"):
            raise RuntimeError("boom")

    assert metrics.active_timer_count() == before
    assert json.loads(lines[0])["metric"] == "broken"
