from .constants import (
    DEFAULT_PALETTE,
    F_CLIENT_ID,
    F_COLOR,
    RELAYED_TYPES,
    SERVER_ONLY_TYPES,
    T_CLEAR,
    T_CURSOR,
    T_DRAW,
    T_INIT,
    T_USERS,
)
from .messages import encode, init_message, parse_inbound, stamp, users_message

__all__ = [
    "DEFAULT_PALETTE",
    "F_CLIENT_ID",
    "F_COLOR",
    "RELAYED_TYPES",
    "SERVER_ONLY_TYPES",
    "T_CLEAR",
    "T_CURSOR",
    "T_DRAW",
    "T_INIT",
    "T_USERS",
    "encode",
    "init_message",
    "parse_inbound",
    "stamp",
    "users_message",
]
