# Message type constants (stringly-typed protocol; canonical list lives here)

# server -> one client (private setup data)
T_INIT = "init"
# server -> all clients on every membership change
T_USERS = "users"

# client -> server (relayed to every other client)
T_DRAW = "draw"
T_CURSOR = "cursor"
T_CLEAR = "clear"

RELAYED_TYPES = frozenset({T_DRAW, T_CURSOR, T_CLEAR})
SERVER_ONLY_TYPES = frozenset({T_INIT, T_USERS})

# Fields the server stamps onto every relayed message.
F_CLIENT_ID = "clientId"
F_COLOR = "color"

DEFAULT_PALETTE = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#FFA07A",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E2",
)
