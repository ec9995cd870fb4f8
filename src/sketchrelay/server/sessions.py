from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sketchrelay.errors import DuplicateParticipantError, TransportClosed
from sketchrelay.protocol.constants import DEFAULT_PALETTE
from sketchrelay.protocol.messages import encode, users_message

from .identity import Identity, IdentityAllocator
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256


@dataclass(eq=False)
class Entry:
    """
    One participant plus its outbound frame queue.

    A single writer task drains the queue into the transport, so a peer that
    stops reading only ever stalls its own writer. Frames offered while the
    queue is full are dropped.
    """

    identity: Identity
    transport: Transport
    outbox: asyncio.Queue[str] = field(
        default_factory=lambda: asyncio.Queue(maxsize=DEFAULT_OUTBOX_SIZE)
    )
    writer: asyncio.Task | None = None

    @property
    def id(self) -> int:
        return self.identity.id

    def start(self) -> None:
        if self.writer is None:
            self.writer = asyncio.get_running_loop().create_task(
                self._write_loop(), name=f"sketchrelay-writer-{self.id}"
            )

    def stop(self) -> None:
        if self.writer is not None:
            self.writer.cancel()

    def offer(self, data: str) -> bool:
        """Queue a frame without waiting. Returns False if it was dropped."""
        try:
            self.outbox.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning("client %s is not keeping up; dropping frame", self.id)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every frame queued so far has been written (or given up on)."""
        await self.outbox.join()

    async def _write_loop(self) -> None:
        while True:
            data = await self.outbox.get()
            try:
                if self.transport.is_open:
                    await self.transport.send_text(data)
            except TransportClosed:
                pass
            except Exception:
                logger.warning("send to client %s failed; skipping", self.id, exc_info=True)
            finally:
                self.outbox.task_done()


class Registry:
    """
    Who is connected right now.

    One lock guards id allocation, membership changes and roster reads.
    Fan-out never holds it and never waits on the network: callers take a
    snapshot and queue frames onto each entry.
    """

    def __init__(
        self,
        palette: Sequence[str] = DEFAULT_PALETTE,
        *,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> None:
        self.allocator = IdentityAllocator(palette)
        self.outbox_size = outbox_size
        self.lock = asyncio.Lock()
        self._entries: dict[int, Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._entries

    def size(self) -> int:
        return len(self._entries)

    def _insert_locked(self, identity: Identity, transport: Transport) -> Entry:
        if identity.id in self._entries:
            raise DuplicateParticipantError(identity.id)
        entry = Entry(
            identity=identity,
            transport=transport,
            outbox=asyncio.Queue(maxsize=self.outbox_size),
        )
        entry.start()
        self._entries[identity.id] = entry
        return entry

    async def insert(self, identity: Identity, transport: Transport) -> Entry:
        async with self.lock:
            return self._insert_locked(identity, transport)

    async def join(self, transport: Transport) -> Entry:
        """Allocate a fresh identity and register it in one step."""
        async with self.lock:
            return self._insert_locked(self.allocator.allocate(), transport)

    async def remove(self, client_id: int) -> bool:
        """Drop a participant. Removing an absent id is a no-op (returns False)."""
        async with self.lock:
            entry = self._entries.pop(client_id, None)
        if entry is None:
            return False
        entry.stop()
        return True

    async def snapshot(self) -> list[Entry]:
        async with self.lock:
            return list(self._entries.values())

    async def for_each(self, visitor: Callable[[Entry], Any]) -> None:
        for entry in await self.snapshot():
            visitor(entry)

    def _roster_locked(self) -> list[dict[str, Any]]:
        return [{"id": e.id, "color": e.identity.color} for e in self._entries.values()]

    async def roster(self) -> list[dict[str, Any]]:
        async with self.lock:
            return self._roster_locked()

    async def roster_snapshot(self) -> tuple[list[dict[str, Any]], list[Entry]]:
        """The roster and the entries it describes, read under one lock acquisition."""
        async with self.lock:
            return self._roster_locked(), list(self._entries.values())

    async def drain(self) -> None:
        for entry in await self.snapshot():
            await entry.drain()

    async def aclose(self) -> None:
        """Stop every writer; used on app shutdown."""
        async with self.lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.stop()


def _fan_out(entries: Iterable[Entry], data: str, exclude_id: int | None) -> int:
    # No awaits in here: frames from one caller are queued back to back, which
    # is what keeps each sender's order and roster order intact per recipient.
    queued = 0
    for entry in entries:
        if entry.id == exclude_id:
            continue
        if not entry.transport.is_open:
            # mid-teardown; its own handler will clean it up
            continue
        if entry.offer(data):
            queued += 1
    return queued


async def broadcast(registry: Registry, msg: dict[str, Any], exclude_id: int | None = None) -> int:
    """
    Best-effort relay of `msg` to every live participant except `exclude_id`.

    Serialized once; every recipient gets the identical frame. Returns how many
    recipients the frame was queued for. Never waits on a recipient's socket.
    """
    data = encode(msg)
    return _fan_out(await registry.snapshot(), data, exclude_id)


async def notify_roster(registry: Registry) -> int:
    """Send the full participant list to everyone, including whoever just joined."""
    users, entries = await registry.roster_snapshot()
    return _fan_out(entries, encode(users_message(users)), None)
