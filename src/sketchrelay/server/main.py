from __future__ import annotations

import argparse
import logging

import uvicorn

from .app import create_app
from .config import get_settings


def main() -> None:
    settings = get_settings()
    ap = argparse.ArgumentParser(description="Run the collaborative drawing relay server.")
    ap.add_argument("--host", default=settings.host, help=f"Bind address (default {settings.host})")
    ap.add_argument("--port", type=int, default=settings.port, help=f"Port (default {settings.port})")
    ap.add_argument("--log-level", default=settings.log_level, help="Python logging level name")
    args = ap.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "Server running on http://%s:%s (websocket at %s)", args.host, args.port, settings.ws_path
    )
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
