from __future__ import annotations


class SketchRelayError(Exception):
    """Base class for every error raised by sketchrelay."""


class MalformedMessageError(SketchRelayError):
    """An inbound frame could not be turned into a relayable message."""


class DuplicateParticipantError(SketchRelayError):
    """A registry insert collided with a live participant id."""

    def __init__(self, client_id: int) -> None:
        super().__init__(f"participant {client_id} is already registered")
        self.client_id = client_id


class TransportClosed(SketchRelayError):
    """The peer is gone; nothing more can be sent or received."""

    def __init__(self, code: int | None = None) -> None:
        super().__init__(f"transport closed (code={code})")
        self.code = code
