"""
Relay process entry point (`jam-relay`).

Loads .env, builds the app from AppConfig and serves it with uvicorn.
TLS is passed straight through to uvicorn when both files are configured.
"""

from __future__ import annotations

from typing import Any

import uvicorn
from dotenv import load_dotenv

from config import AppConfig
from observability.logger import log_event
from server.app import create_app


def uvicorn_options(config: AppConfig) -> dict[str, Any]:
    """Keyword arguments for uvicorn.run derived from config."""
    options: dict[str, Any] = {
        "host": config.host,
        "port": config.port,
        "log_level": config.log_level.lower(),
    }
    if config.tls_enabled:
        options["ssl_certfile"] = config.ssl_certfile
        options["ssl_keyfile"] = config.ssl_keyfile
    return options


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    scheme = "https" if config.tls_enabled else "http"
    log_event({
        "event_type": "RELAY_STARTING",
        "env": config.env,
        "url": f"{scheme}://{config.host}:{config.port}",
    })

    uvicorn.run(create_app(config), **uvicorn_options(config))


if __name__ == "__main__":
    main()
