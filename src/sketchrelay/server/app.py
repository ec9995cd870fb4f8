from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.staticfiles import StaticFiles

from .config import Settings, get_settings
from .connection import Connection
from .sessions import Registry
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build an app with its own registry; nothing is shared between instances."""
    settings = settings or get_settings()
    registry = Registry(settings.palette, outbox_size=settings.outbox_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await registry.aclose()

    app = FastAPI(title="sketchrelay", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry

    @app.get("/healthz")
    def healthz(request: Request):
        return {"ok": True, "participants": request.app.state.registry.size()}

    @app.get("/users")
    async def users(request: Request):
        return {"users": await request.app.state.registry.roster()}

    @app.websocket(settings.ws_path)
    async def ws(ws: WebSocket):
        await ws.accept()
        conn = Connection(
            ws.app.state.registry,
            WebSocketTransport(ws),
            strict_schema=settings.strict_schema,
            max_message_bytes=settings.max_message_bytes,
            debug_log_msgs=settings.debug_log_msgs,
        )
        await conn.run()

    # Mounted last so the routes above win over files of the same name.
    if settings.static_dir:
        logger.info("Serving static client from %s", settings.static_dir)
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app
