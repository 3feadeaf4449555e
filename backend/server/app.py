"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (relay hub + registry)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from relay.hub import RelayHub
from relay.registry import PeerRegistry

from server.routes import register_routes


def create_app(config: AppConfig | None = None, *, hub: RelayHub | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A hub may be injected so tests can seed the registry (e.g. with a
    deterministic random source) and inspect the connection table.
    """
    config = config or AppConfig.load_from_env()

    app = FastAPI(title="Jam Relay")

    app.state.config = config
    # One hub per process: ids are unique for the relay's lifetime
    app.state.hub = hub or RelayHub(PeerRegistry())

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
