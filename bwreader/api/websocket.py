"""WebSocket push channel.

Adapts a Starlette WebSocket to the hub's :class:`Transport` protocol and
serves one :class:`Connection` per accepted socket.
"""

from __future__ import annotations

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from bwreader.hub import BroadcastHub, Connection, TransportClosed
from bwreader.models.config import HubConfig

ws_router = APIRouter()


class WebSocketTransport:
    """Text-frame transport over a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def accept(self) -> None:
        await self._ws.accept()

    async def send_text(self, data: str) -> None:
        try:
            await self._ws.send_text(data)
        except WebSocketDisconnect as exc:
            raise TransportClosed(str(exc.code)) from exc

    async def receive_text(self) -> str:
        message = await self._ws.receive()
        if message["type"] == "websocket.disconnect":
            raise TransportClosed(str(message.get("code", "")))
        return message.get("text") or ""

    async def close(self) -> None:
        if self._ws.application_state is WebSocketState.DISCONNECTED:
            return
        if self._ws.client_state is WebSocketState.DISCONNECTED:
            return
        await self._ws.close()


@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Stream snapshot envelopes to the viewer until either side goes away."""
    hub: BroadcastHub = websocket.app.state.hub
    hub_config: HubConfig = websocket.app.state.hub_config
    connection = Connection(
        WebSocketTransport(websocket),
        send_buffer=hub_config.send_buffer,
        write_wait=hub_config.write_wait_seconds,
    )
    await connection.serve(hub)
