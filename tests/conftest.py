from __future__ import annotations

import asyncio
import json

import pytest
import pytest_asyncio

from sketchrelay.errors import TransportClosed
from sketchrelay.server.sessions import Registry

PALETTE = ("#111111", "#222222", "#333333")


class FakeTransport:
    """In-memory transport: frames queued in `inbox` are what the peer 'sends'."""

    def __init__(self, *, broken: bool = False) -> None:
        self.sent: list[str] = []
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.is_open = True
        self.broken = broken
        self.closed_code: int | None = None

    async def send_text(self, data: str) -> None:
        if not self.is_open:
            raise TransportClosed()
        if self.broken:
            raise OSError("broken pipe")
        self.sent.append(data)

    async def receive_text(self) -> str:
        item = await self.inbox.get()
        if item is None:
            self.is_open = False
            raise TransportClosed(1000)
        return item

    async def close(self, code: int = 1000) -> None:
        self.is_open = False
        self.closed_code = code

    def feed(self, *frames: str) -> None:
        for frame in frames:
            self.inbox.put_nowait(frame)

    def hang_up(self) -> None:
        self.inbox.put_nowait(None)

    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]

    def of_type(self, t: str) -> list[dict]:
        return [m for m in self.messages() if m.get("type") == t]


class StalledTransport(FakeTransport):
    """A peer that stopped reading: the first write never completes."""

    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    async def send_text(self, data: str) -> None:
        self.attempts += 1
        await asyncio.Event().wait()


@pytest_asyncio.fixture
async def registry():
    reg = Registry(PALETTE)
    yield reg
    await reg.aclose()


@pytest.fixture
def draw_msg() -> dict:
    return {"type": "draw", "x0": 1, "y0": 1, "x1": 5, "y1": 5, "color": "#000", "size": 3, "tool": "brush"}
