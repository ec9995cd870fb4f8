from __future__ import annotations

import enum
import logging

from sketchrelay.errors import DuplicateParticipantError, MalformedMessageError, TransportClosed
from sketchrelay.protocol.messages import encode, init_message, parse_inbound, stamp

from .identity import Identity
from .sessions import Entry, Registry, broadcast, notify_roster
from .transport import Transport

logger = logging.getLogger(__name__)


class ConnState(enum.Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class Connection:
    """
    One participant's session: CONNECTING -> ACTIVE -> CLOSED.

    `run()` drives the whole thing off a transport. `open()`, `handle_text()`
    and `close()` are the individual transitions and can be called directly.
    """

    def __init__(
        self,
        registry: Registry,
        transport: Transport,
        *,
        strict_schema: bool = True,
        max_message_bytes: int | None = None,
        debug_log_msgs: bool = False,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.strict_schema = strict_schema
        self.max_message_bytes = max_message_bytes
        self.debug_log_msgs = debug_log_msgs
        self.state = ConnState.CONNECTING
        self.entry: Entry | None = None

    @property
    def identity(self) -> Identity | None:
        return self.entry.identity if self.entry is not None else None

    async def open(self) -> Identity:
        if self.state is not ConnState.CONNECTING:
            raise RuntimeError(f"cannot open a connection in state {self.state.value}")
        try:
            self.entry = await self.registry.join(self.transport)
        except DuplicateParticipantError:
            self.state = ConnState.CLOSED
            raise
        self.state = ConnState.ACTIVE
        ident = self.entry.identity
        logger.info("Client %s connected. Total clients: %s", ident.id, self.registry.size())

        # queued ahead of the roster, so init is always the first frame a client sees
        self.entry.offer(encode(init_message(ident.id, ident.color)))
        await notify_roster(self.registry)
        return ident

    async def handle_text(self, raw: str | bytes) -> bool:
        """Relay one inbound frame to everyone else. Returns False if it was dropped."""
        if self.state is not ConnState.ACTIVE or self.entry is None:
            return False
        ident = self.entry.identity
        try:
            msg = parse_inbound(raw, strict=self.strict_schema, max_bytes=self.max_message_bytes)
        except MalformedMessageError as e:
            logger.warning("Dropping message from client %s: %s", ident.id, e)
            return False

        if self.debug_log_msgs:
            logger.debug("in type=%s from=%s", msg.get("type"), ident.id)

        try:
            await broadcast(self.registry, stamp(msg, ident.id, ident.color), exclude_id=ident.id)
        except (TypeError, ValueError) as e:
            logger.warning("Could not relay message from client %s: %s", ident.id, e)
            return False
        return True

    async def close(self) -> bool:
        """Leave the session. Safe to call any number of times; only the first does anything."""
        if self.state is ConnState.CLOSED:
            return False
        self.state = ConnState.CLOSED
        if self.entry is None:
            return False
        removed = await self.registry.remove(self.entry.id)
        if not removed:
            return False
        logger.info(
            "Client %s disconnected. Total clients: %s", self.entry.id, self.registry.size()
        )
        await notify_roster(self.registry)
        return True

    async def run(self) -> None:
        try:
            await self.open()
            while True:
                raw = await self.transport.receive_text()
                await self.handle_text(raw)
        except TransportClosed as e:
            if self.debug_log_msgs:
                logger.debug("transport closed for client %s: %s", self.entry and self.entry.id, e)
        except DuplicateParticipantError:
            logger.error("Refusing connection: identity collision", exc_info=True)
            await self.transport.close(code=1011)
        finally:
            await self.close()
