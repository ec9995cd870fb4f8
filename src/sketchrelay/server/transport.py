from __future__ import annotations

from typing import Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from sketchrelay.errors import TransportClosed


class Transport(Protocol):
    """What the relay core needs from a connection. One frame in, one frame out."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str:
        """Next inbound frame; raises `TransportClosed` once the peer is gone."""
        ...

    async def close(self, code: int = 1000) -> None: ...


class WebSocketTransport:
    """`Transport` over an accepted FastAPI/Starlette WebSocket."""

    def __init__(self, ws: WebSocket) -> None:
        self.ws = ws

    @property
    def is_open(self) -> bool:
        return (
            self.ws.client_state == WebSocketState.CONNECTED
            and self.ws.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        try:
            await self.ws.send_text(data)
        except WebSocketDisconnect as e:
            raise TransportClosed(e.code) from e
        except RuntimeError as e:
            # starlette refuses to send once either side has closed
            raise TransportClosed() from e

    async def receive_text(self) -> str:
        try:
            message = await self.ws.receive()
        except RuntimeError as e:
            raise TransportClosed() from e
        if message["type"] == "websocket.disconnect":
            raise TransportClosed(message.get("code"))
        text = message.get("text")
        if text is not None:
            return text
        # Binary frames are read as UTF-8 text, like any other frame.
        data = message.get("bytes") or b""
        return data.decode("utf-8", errors="replace")

    async def close(self, code: int = 1000) -> None:
        if not self.is_open:
            return
        try:
            await self.ws.close(code=code)
        except RuntimeError:
            # lost a race with the peer's own close
            pass
