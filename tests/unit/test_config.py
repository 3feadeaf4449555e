# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import AppConfig
from constants import backoff_delay_s


def test_defaults(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "ENV", "LOG_LEVEL", "RELAY_HOST", "RELAY_PORT", "SSL_CERTFILE",
        "SSL_KEYFILE", "RELAY_URL", "LATENCY_PROBE_INTERVAL_S",
    ):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.load_from_env()

    assert config.env == "dev"
    assert config.port == 3000
    assert config.relay_url == "ws://localhost:3000/ws"
    assert config.latency_probe_interval_s == 5.0
    assert config.tls_enabled is False


def test_tls_needs_both_files(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SSL_CERTFILE", "ssl/cert.pem")
    monkeypatch.delenv("SSL_KEYFILE", raising=False)
    assert AppConfig.load_from_env().tls_enabled is False

    monkeypatch.setenv("SSL_KEYFILE", "ssl/key.pem")
    assert AppConfig.load_from_env().tls_enabled is True


@pytest.mark.parametrize("port", ["0", "70000", "abc"])
def test_bad_port_is_rejected(monkeypatch: pytest.MonkeyPatch, port: str):
    monkeypatch.setenv("RELAY_PORT", port)

    with pytest.raises(ValueError):
        AppConfig.load_from_env()


def test_bad_probe_interval_is_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("RELAY_PORT", raising=False)
    monkeypatch.setenv("LATENCY_PROBE_INTERVAL_S", "0")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()


def test_backoff_saturates_at_last_entry():
    assert backoff_delay_s(0) == 0.2
    assert backoff_delay_s(1) == 0.4
    assert backoff_delay_s(99) == backoff_delay_s(4)
