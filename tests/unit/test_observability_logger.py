# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    - log_event emits exactly one JSONL line
    - payload fields are serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []

    def fake_print(line: str) -> None:
        captured.append(line)

    monkeypatch.setattr(logger, "_print", fake_print)

    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
        "ts_ms": 42,
    }

    logger.log_event(payload)

    assert len(captured) == 1
    assert "\n" not in captured[0]

    decoded = json.loads(captured[0])
    assert decoded == payload


def test_log_event_adds_timestamp_when_missing(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"event_type": "TEST"})

    decoded = json.loads(captured[0])
    assert isinstance(decoded["ts_ms"], int)
    assert decoded["ts_ms"] > 0


def test_log_event_never_raises_on_unserializable_payload(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"event_type": "TEST", "bad": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert "original_event_repr" in decoded
