from __future__ import annotations

import asyncio
import json
import logging

import pytest
from conftest import PALETTE, FakeTransport, StalledTransport

from sketchrelay.errors import DuplicateParticipantError
from sketchrelay.server.connection import Connection, ConnState
from sketchrelay.server.identity import Identity
from sketchrelay.server.sessions import Registry


async def _settle(registry: Registry) -> None:
    # wait for queued frames to be written, except to peers that never read
    for entry in await registry.snapshot():
        if not isinstance(entry.transport, StalledTransport):
            await entry.drain()


async def _open(registry: Registry, **kw) -> tuple[Connection, FakeTransport]:
    t = FakeTransport()
    conn = Connection(registry, t, **kw)
    await conn.open()
    await _settle(registry)
    return conn, t


@pytest.mark.asyncio
async def test_open_sends_private_init_then_roster(registry: Registry) -> None:
    a, ta = await _open(registry)
    assert a.state is ConnState.ACTIVE
    assert a.identity == Identity(0, PALETTE[0])
    assert ta.messages() == [
        {"type": "init", "clientId": 0, "color": PALETTE[0]},
        {"type": "users", "users": [{"id": 0, "color": PALETTE[0]}]},
    ]

    b, tb = await _open(registry)
    # A never sees B's init
    assert ta.of_type("init") == [ta.messages()[0]]
    assert tb.messages()[0] == {"type": "init", "clientId": 1, "color": PALETTE[1]}
    for t in (ta, tb):
        assert len(t.of_type("users")[-1]["users"]) == 2


@pytest.mark.asyncio
async def test_open_twice_is_an_error(registry: Registry) -> None:
    a, _ = await _open(registry)
    with pytest.raises(RuntimeError):
        await a.open()


@pytest.mark.asyncio
async def test_relay_is_stamped_and_not_echoed(registry: Registry, draw_msg: dict) -> None:
    a, ta = await _open(registry)
    b, tb = await _open(registry)
    c, tc = await _open(registry)
    before_a = len(ta.sent)

    assert await a.handle_text(json.dumps(draw_msg)) is True
    await _settle(registry)

    assert len(ta.sent) == before_a
    for t in (tb, tc):
        (got,) = t.of_type("draw")
        assert got == {**draw_msg, "clientId": 0, "color": PALETTE[0]}


@pytest.mark.asyncio
async def test_malformed_input_is_dropped_and_session_survives(
    registry: Registry, caplog: pytest.LogCaptureFixture
) -> None:
    a, ta = await _open(registry)
    b, tb = await _open(registry)
    c, tc = await _open(registry)

    with caplog.at_level(logging.WARNING):
        assert await a.handle_text("{{{ not json") is False
        assert await a.handle_text('{"type":"users","users":[]}') is False
    await _settle(registry)
    assert "Dropping message from client 0" in caplog.text
    assert a.state is ConnState.ACTIVE
    assert ta.is_open
    assert registry.size() == 3

    assert await a.handle_text('{"type":"clear"}') is True
    await _settle(registry)
    assert tb.of_type("clear") == [{"type": "clear", "clientId": 0, "color": PALETTE[0]}]
    assert len(tc.of_type("clear")) == 1
    # B and C keep talking to each other as before
    assert await b.handle_text('{"type":"cursor","x":3,"y":4}') is True
    await _settle(registry)
    assert tc.of_type("cursor")[0]["clientId"] == 1


@pytest.mark.asyncio
async def test_lax_mode_relays_unknown_types(registry: Registry) -> None:
    a, _ = await _open(registry, strict_schema=False)
    b, tb = await _open(registry)
    assert await a.handle_text('{"type":"sticker","id":"cat"}') is True
    await _settle(registry)
    assert tb.of_type("sticker") == [{"type": "sticker", "id": "cat", "clientId": 0, "color": PALETTE[0]}]


@pytest.mark.asyncio
async def test_oversized_frame_is_dropped(registry: Registry) -> None:
    a, _ = await _open(registry, max_message_bytes=64)
    b, tb = await _open(registry)
    assert await a.handle_text(json.dumps({"type": "clear", "pad": "x" * 100})) is False
    assert tb.of_type("clear") == []


@pytest.mark.asyncio
async def test_close_removes_and_notifies_once(registry: Registry) -> None:
    a, ta = await _open(registry)
    b, tb = await _open(registry)
    rosters_before = len(tb.of_type("users"))

    assert await a.close() is True
    assert await a.close() is False
    await _settle(registry)

    assert a.state is ConnState.CLOSED
    assert registry.size() == 1
    rosters = tb.of_type("users")
    assert len(rosters) == rosters_before + 1
    assert rosters[-1]["users"] == [{"id": 1, "color": PALETTE[1]}]


@pytest.mark.asyncio
async def test_concurrent_double_close(registry: Registry) -> None:
    a, _ = await _open(registry)
    b, tb = await _open(registry)
    rosters_before = len(tb.of_type("users"))
    results = await asyncio.gather(a.close(), a.close())
    assert sorted(results) == [False, True]
    await _settle(registry)
    assert len(tb.of_type("users")) == rosters_before + 1


@pytest.mark.asyncio
async def test_closed_connection_ignores_input(registry: Registry) -> None:
    a, _ = await _open(registry)
    b, tb = await _open(registry)
    await a.close()
    assert await a.handle_text('{"type":"clear"}') is False
    assert tb.of_type("clear") == []


@pytest.mark.asyncio
async def test_close_before_open_is_noop(registry: Registry) -> None:
    conn = Connection(registry, FakeTransport())
    assert await conn.close() is False
    assert conn.state is ConnState.CLOSED


@pytest.mark.asyncio
async def test_run_drives_full_lifecycle(registry: Registry, draw_msg: dict) -> None:
    watcher, tw = await _open(registry)
    t = FakeTransport()
    conn = Connection(registry, t)
    task = asyncio.create_task(conn.run())

    t.feed("garbage", json.dumps(draw_msg), '{"type":"cursor","x":1,"y":1}')
    t.hang_up()
    await asyncio.wait_for(task, timeout=2)
    await _settle(registry)

    assert conn.state is ConnState.CLOSED
    assert registry.size() == 1
    relayed = [m["type"] for m in tw.messages() if m["type"] != "users"]
    assert relayed == ["init", "draw", "cursor"]
    assert tw.of_type("users")[-1]["users"] == [{"id": 0, "color": PALETTE[0]}]


@pytest.mark.asyncio
async def test_relay_order_preserved_per_sender(registry: Registry) -> None:
    b, tb = await _open(registry)
    t = FakeTransport()
    task = asyncio.create_task(Connection(registry, t).run())
    t.feed(*(json.dumps({"type": "cursor", "x": i, "y": 0}) for i in range(30)))
    t.hang_up()
    await asyncio.wait_for(task, timeout=2)
    await _settle(registry)
    assert [m["x"] for m in tb.of_type("cursor")] == list(range(30))


@pytest.mark.asyncio
async def test_identity_collision_refuses_only_that_connection(registry: Registry) -> None:
    squatter = FakeTransport()
    await registry.insert(Identity(0, PALETTE[0]), squatter)

    t = FakeTransport()
    conn = Connection(registry, t)
    await asyncio.wait_for(conn.run(), timeout=2)

    assert conn.state is ConnState.CLOSED
    assert t.closed_code == 1011
    assert t.sent == []
    snap = await registry.snapshot()
    assert [e.transport for e in snap] == [squatter]

    # the counter moved on, so the next one gets a fresh id
    nxt = Connection(registry, FakeTransport())
    assert (await nxt.open()).id == 1


@pytest.mark.asyncio
async def test_duplicate_from_open_propagates(registry: Registry) -> None:
    await registry.insert(Identity(0, PALETTE[0]), FakeTransport())
    conn = Connection(registry, FakeTransport())
    with pytest.raises(DuplicateParticipantError):
        await conn.open()
    assert conn.state is ConnState.CLOSED


@pytest.mark.asyncio
async def test_peer_that_stops_reading_blocks_nobody(registry: Registry, draw_msg: dict) -> None:
    s = Connection(registry, StalledTransport())
    await asyncio.wait_for(s.open(), 1)
    b, tb = await _open(registry)
    c, tc = await _open(registry)

    assert await asyncio.wait_for(b.handle_text(json.dumps(draw_msg)), 1) is True
    d = Connection(registry, FakeTransport())
    await asyncio.wait_for(d.open(), 1)
    assert await asyncio.wait_for(d.close(), 1) is True
    for conn in (b, c):
        assert conn.entry is not None
        await asyncio.wait_for(conn.entry.drain(), 1)

    assert tc.of_type("draw") == [{**draw_msg, "clientId": 1, "color": PALETTE[1]}]
    assert [len(m["users"]) for m in tc.of_type("users")] == [3, 4, 3]
    assert [len(m["users"]) for m in tb.of_type("users")][-2:] == [4, 3]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        '{"type":"cursor","x":NaN,"y":Infinity}',
        '{"type":"cursor","x":1e999,"y":0}',
        '{"type":"clear","note":"\\ud800"}',
    ],
)
async def test_frames_that_cannot_be_relayed_as_json_are_dropped(registry: Registry, raw: str) -> None:
    a, ta = await _open(registry)
    b, tb = await _open(registry)
    assert await a.handle_text(raw) is False
    assert await a.handle_text('{"type":"clear"}') is True
    await _settle(registry)
    assert [m["type"] for m in tb.messages() if m["type"] != "users"] == ["init", "clear"]
    assert a.state is ConnState.ACTIVE
