from __future__ import annotations

import json
from typing import Annotated, Any, Literal, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from sketchrelay.errors import MalformedMessageError

from .constants import F_CLIENT_ID, F_COLOR, SERVER_ONLY_TYPES

# Coordinates are canvas pixels as reported by the sending surface; the server
# never checks ranges or the tool name, it only needs to know the kind.


class _Relayed(BaseModel):
    # Unknown fields ride along untouched.
    model_config = ConfigDict(extra="allow")


class Draw(_Relayed):
    type: Literal["draw"]
    x0: float
    y0: float
    x1: float
    y1: float
    color: str
    size: float
    tool: str


class Cursor(_Relayed):
    type: Literal["cursor"]
    x: float
    y: float


class Clear(_Relayed):
    type: Literal["clear"]


class Init(BaseModel):
    type: Literal["init"] = "init"
    clientId: int
    color: str


class UserEntry(BaseModel):
    id: int
    color: str


class Users(BaseModel):
    type: Literal["users"] = "users"
    users: list[UserEntry]


InboundMsg: TypeAlias = Annotated[Union[Draw, Cursor, Clear], Field(discriminator="type")]
OutboundMsg: TypeAlias = Union[Init, Users, Draw, Cursor, Clear]

_INBOUND = TypeAdapter(InboundMsg)


def _reject_constant(name: str) -> Any:
    raise MalformedMessageError(f"{name} is not valid JSON")


def encode(msg: dict[str, Any]) -> str:
    """Serialize one frame. Callers send the returned text as-is to every recipient."""
    return json.dumps(msg, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def parse_inbound(
    raw: str | bytes,
    *,
    strict: bool = True,
    max_bytes: int | None = None,
) -> dict[str, Any]:
    """
    Turn one inbound frame into a message dict ready for stamping.

    - **strict**: classify against the draw/cursor/clear schema; otherwise any
      JSON object passes, as long as it doesn't claim a server-only type
    - **max_bytes**: frames larger than this are rejected before parsing

    The returned dict is the parsed payload itself, not a normalized model dump,
    so relayed frames carry exactly what the sender wrote.
    """
    if isinstance(raw, bytes):
        size = len(raw)
    else:
        size = len(raw.encode("utf-8", errors="surrogatepass"))
    if max_bytes is not None and size > max_bytes:
        raise MalformedMessageError(f"frame of {size} bytes exceeds limit of {max_bytes}")

    try:
        obj = json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        raise MalformedMessageError(f"invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedMessageError(f"expected a JSON object, got {type(obj).__name__}")

    # Lone surrogates and overflowing numbers (1e999) parse fine but can't be
    # written back out as valid UTF-8 JSON.
    try:
        encode(obj).encode("utf-8")
    except (UnicodeEncodeError, ValueError) as e:
        raise MalformedMessageError(f"cannot be relayed as JSON: {e}") from e

    t = obj.get("type")
    if t in SERVER_ONLY_TYPES:
        raise MalformedMessageError(f"clients may not send {t!r} messages")

    if strict:
        try:
            _INBOUND.validate_python(obj)
        except ValidationError as e:
            raise MalformedMessageError(
                f"invalid {t!r} message: {e.error_count()} error(s)"
            ) from e
    return obj


def stamp(msg: dict[str, Any], client_id: int, color: str) -> dict[str, Any]:
    """Copy of `msg` tagged with the sender's identity (overrides any client-sent values)."""
    out = dict(msg)
    out[F_CLIENT_ID] = client_id
    out[F_COLOR] = color
    return out


def init_message(client_id: int, color: str) -> dict[str, Any]:
    return Init(clientId=client_id, color=color).model_dump()


def users_message(users: list[dict[str, Any]]) -> dict[str, Any]:
    return Users(users=[UserEntry(**u) for u in users]).model_dump()
