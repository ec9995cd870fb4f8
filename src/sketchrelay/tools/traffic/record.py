from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

import websockets

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def record_line(msg: Any, ts: int | None = None) -> str:
    return json.dumps({"ts": _now_ms() if ts is None else ts, "msg": msg}, ensure_ascii=False)


async def record(ws_url: str, out_path: Path, *, echo: bool, limit: int | None = None) -> int:
    """
    Join the session as a silent participant and append every frame it receives.

    Stops after `limit` frames if given, otherwise when the server closes.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with out_path.open("a", encoding="utf-8") as f:
        async with websockets.connect(ws_url, max_size=2**22) as ws:
            try:
                while limit is None or n < limit:
                    raw = await ws.recv()
                    if isinstance(raw, bytes):
                        raw = raw.decode("utf-8", errors="replace")
                    try:
                        msg = json.loads(raw)
                    except ValueError:
                        logger.warning("skipping non-JSON frame: %r", raw[:80])
                        continue
                    if echo:
                        t = msg.get("type") if isinstance(msg, dict) else None
                        print(f"[record] type={t} msg={msg}")
                    f.write(record_line(msg) + "\n")
                    f.flush()
                    n += 1
            except websockets.ConnectionClosed:
                logger.info("server closed the connection after %s frames", n)
    return n


def main() -> None:
    ap = argparse.ArgumentParser(description="Record relay traffic to a JSONL file.")
    ap.add_argument("--ws", required=True, help="WebSocket URL, e.g. ws://127.0.0.1:3000/")
    ap.add_argument("--out", required=True, help="Output JSONL path")
    ap.add_argument("--print", action="store_true", help="Print received messages to stdout")
    ap.add_argument("--limit", type=int, default=None, help="Stop after this many frames")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(record(args.ws, Path(args.out), echo=args.print, limit=args.limit))


if __name__ == "__main__":
    main()
