"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No relay or scheduling logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import LATENCY_PROBE_INTERVAL_S


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the relay app factory and the peer client.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Relay server
    # ------------------------------------------------------------------

    host: str
    port: int
    ssl_certfile: str | None
    ssl_keyfile: str | None

    # ------------------------------------------------------------------
    # Peer client
    # ------------------------------------------------------------------

    relay_url: str
    latency_probe_interval_s: float

    @property
    def tls_enabled(self) -> bool:
        """True when both certificate and key are configured."""
        return bool(self.ssl_certfile and self.ssl_keyfile)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed or is out of range.
        """
        port = int(os.environ.get("RELAY_PORT", "3000"))
        if not 0 < port < 65536:
            raise ValueError(f"RELAY_PORT out of range: {port}")

        probe_interval_s = float(
            os.environ.get("LATENCY_PROBE_INTERVAL_S", str(LATENCY_PROBE_INTERVAL_S))
        )
        if probe_interval_s <= 0:
            raise ValueError("LATENCY_PROBE_INTERVAL_S must be > 0")

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            host=os.environ.get("RELAY_HOST", "0.0.0.0"),
            port=port,
            ssl_certfile=os.environ.get("SSL_CERTFILE") or None,
            ssl_keyfile=os.environ.get("SSL_KEYFILE") or None,

            relay_url=os.environ.get("RELAY_URL", f"ws://localhost:{port}/ws"),
            latency_probe_interval_s=probe_interval_s,
        )
