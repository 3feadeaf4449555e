"""
Route registration for the relay.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire a PeerGateway to each WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

from fastapi import WebSocket, WebSocketDisconnect, FastAPI

from observability.logger import log_event
from protocol.messages import encode_message
from relay.hub import RelayHub
from relay.registry import normalize_origin
from session.gateway import PeerGateway, GatewayResult


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str | int]: # pyright: ignore[reportUnusedFunction]
        hub: RelayHub = app.state.hub
        return {"status": "ok", "peers": len(hub.registry)}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = PeerGateway(hub=app.state.hub)
        origin = normalize_origin(ws.client.host if ws.client else None)

        try:
            result = await gateway.on_ws_connect(ws, origin)
            await _flush_gateway_result(ws, result)

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result)

                elif msg.get("bytes") is not None:
                    result = await gateway.on_binary_message(msg["bytes"])
                    await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "peer_id": gateway.session.peer_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(encode_message(msg))
