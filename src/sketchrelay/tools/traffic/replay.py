from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import NamedTuple

import websockets

from sketchrelay.protocol.constants import F_CLIENT_ID, F_COLOR, RELAYED_TYPES, T_DRAW
from sketchrelay.protocol.messages import encode


class Frame(NamedTuple):
    ts: int | None
    msg: dict


def _frame(obj: object) -> Frame | None:
    # record.py wraps each message as {"ts": ms, "msg": {...}}; bare messages are fine too
    if not isinstance(obj, dict):
        return None
    inner = obj.get("msg")
    if isinstance(inner, dict):
        ts = obj.get("ts")
        return Frame(int(ts) if isinstance(ts, (int, float)) else None, inner)
    return Frame(None, obj)


def load_events(jsonl_path: Path) -> list[Frame]:
    with jsonl_path.open(encoding="utf-8") as f:
        frames = (_frame(json.loads(line)) for line in f if line.strip())
        return [fr for fr in frames if fr is not None]


def as_sent(msg: dict) -> dict:
    """
    Undo the relay's stamping so the message looks like a client wrote it.

    `clientId` always goes. `color` stays on draws, where it is the stroke color
    the schema requires; on cursor/clear it was only ever the stamp.
    """
    out = {k: v for k, v in msg.items() if k != F_CLIENT_ID}
    if out.get("type") != T_DRAW:
        out.pop(F_COLOR, None)
    return out


def schedule(
    frames: Iterable[Frame],
    *,
    speed: float = 1.0,
    default_dt_ms: int = 0,
    only_type: str | None = None,
) -> Iterator[tuple[float, dict]]:
    """
    Yield (seconds to wait, message to send) for every replayable frame.

    Only draw/cursor/clear are replayed. Gaps come from recorded timestamps,
    scaled by `speed`; frames without one wait `default_dt_ms`.
    """
    scale = 1000.0 * max(0.01, speed)
    last_ts: int | None = None
    for ts, msg in frames:
        kind = msg.get("type")
        if kind not in RELAYED_TYPES or (only_type and kind != only_type):
            continue
        gap_ms = default_dt_ms if ts is None or last_ts is None else max(0, ts - last_ts)
        if ts is not None:
            last_ts = ts
        yield gap_ms / scale, as_sent(msg)


async def replay(
    ws_url: str,
    jsonl_path: Path,
    *,
    speed: float = 1.0,
    default_dt_ms: int = 0,
    only_type: str | None = None,
) -> int:
    """Replay previously-recorded JSONL into the relay as a new participant."""
    frames = load_events(jsonl_path)
    sent = 0
    async with websockets.connect(ws_url, max_size=2**22) as ws:
        for delay_s, msg in schedule(
            frames, speed=speed, default_dt_ms=default_dt_ms, only_type=only_type
        ):
            if delay_s:
                await asyncio.sleep(delay_s)
            await ws.send(encode(msg))
            sent += 1
    return sent


def main() -> None:
    ap = argparse.ArgumentParser(description="Replay recorded drawing traffic into the relay.")
    ap.add_argument("--ws", required=True, help="WebSocket URL, e.g. ws://127.0.0.1:3000/")
    ap.add_argument("--in", dest="inp", required=True, help="Input JSONL path")
    ap.add_argument("--speed", type=float, default=1.0, help="Speed multiplier (2.0 = 2x faster)")
    ap.add_argument("--default-dt-ms", type=int, default=0, help="Delay between messages if no timestamps")
    ap.add_argument(
        "--only-type",
        default=None,
        help="If set, only replay messages of this type (e.g. 'draw').",
    )
    args = ap.parse_args()

    asyncio.run(
        replay(
            args.ws,
            Path(args.inp),
            speed=args.speed,
            default_dt_ms=args.default_dt_ms,
            only_type=args.only_type,
        )
    )


if __name__ == "__main__":
    main()
