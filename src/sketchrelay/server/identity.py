from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sketchrelay.protocol.constants import DEFAULT_PALETTE


@dataclass(frozen=True)
class Identity:
    id: int
    color: str


class IdentityAllocator:
    """
    Hands out participant identities.

    Ids start at 0 and are never reused, even after the participant leaves,
    so clients can key remote cursors off them for the life of the process.
    Not locked: the registry calls `allocate()` under its own lock.
    """

    def __init__(self, palette: Sequence[str] = DEFAULT_PALETTE) -> None:
        if len(palette) < 2:
            raise ValueError("palette needs at least two colors")
        self._palette = tuple(palette)
        self._next_id = 0

    @property
    def palette(self) -> tuple[str, ...]:
        return self._palette

    def color_for(self, client_id: int) -> str:
        return self._palette[client_id % len(self._palette)]

    def allocate(self) -> Identity:
        client_id = self._next_id
        self._next_id += 1
        return Identity(id=client_id, color=self.color_for(client_id))
