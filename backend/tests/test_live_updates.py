from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from citypulse.broadcast import BroadcastLoop, SubscriberHub, traffic_update_message
from citypulse.main import app
from citypulse.metrics_store import metrics_snapshot, reset_metrics
from citypulse.settings import settings
from citypulse.store import CityDataStore


class FakeSocket:
    def __init__(self, *, fail: bool = False, state: WebSocketState = WebSocketState.CONNECTED) -> None:
        self.client = None
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))


def _fixed_clock(hour: int):
    return lambda: datetime(2024, 5, 1, hour, 30)


def _wait_for_subscribers(count: int, timeout_s: float = 2.0) -> None:
    deadline = time.monotonic() + timeout_s
    while len(app.state.hub) < count:
        if time.monotonic() > deadline:
            raise AssertionError(f"expected {count} subscribers, have {len(app.state.hub)}")
        time.sleep(0.01)


def test_tick_broadcasts_live_update_to_open_subscribers() -> None:
    reset_metrics()
    store = CityDataStore()
    hub = SubscriberHub()
    loop = BroadcastLoop(store, hub, interval_s=10.0, clock=_fixed_clock(8))

    open_a, open_b = FakeSocket(), FakeSocket()
    closed = FakeSocket(state=WebSocketState.DISCONNECTED)
    broken = FakeSocket(fail=True)

    async def scenario() -> int:
        for ws in (open_a, closed, broken, open_b):
            await hub.register(ws)  # type: ignore[arg-type]
        return await loop.tick()

    sent = asyncio.run(scenario())

    assert sent == 2
    assert closed.sent == []
    assert broken.sent == []
    assert len(hub) == 3  # the failing socket is dropped, the closed one just skipped
    assert open_a.sent == open_b.sent

    message = open_a.sent[0]
    assert message["type"] == "live_update"
    assert set(message["data"]) == {"traffic", "pollution", "timestamp"}
    assert len(message["data"]["traffic"]) == 400
    assert len(message["data"]["pollution"]) == 15
    assert all(row["timeHour"] == 8 for row in message["data"]["traffic"])

    broadcast = metrics_snapshot()["broadcast"]
    assert broadcast["messages_sent"] == 2
    assert broadcast["send_failures"] == 1


def test_tick_regenerates_and_overwrites_current_hour() -> None:
    store = CityDataStore()
    loop = BroadcastLoop(store, SubscriberHub(), interval_s=10.0, clock=_fixed_clock(17))

    cached = store.get_traffic(17)
    asyncio.run(loop.tick())
    after_first = store.get_traffic(17)
    asyncio.run(loop.tick())
    after_second = store.get_traffic(17)

    assert [s.id for s in after_first] != [s.id for s in cached]
    assert [s.id for s in after_second] != [s.id for s in after_first]


def test_run_loop_keeps_going_after_failed_tick(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_metrics()
    store = CityDataStore()
    hub = SubscriberHub()
    loop = BroadcastLoop(store, hub, interval_s=0.01, clock=_fixed_clock(12))
    sock = FakeSocket()

    original = store.generate_traffic
    calls = {"n": 0}

    def flaky(time_hour: int | float, reduction: float = 0.0):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("transient")
        return original(time_hour, reduction)

    monkeypatch.setattr(store, "generate_traffic", flaky)

    async def scenario() -> None:
        await hub.register(sock)  # type: ignore[arg-type]
        loop.start()
        assert loop.running
        for _ in range(200):
            if sock.sent:
                break
            await asyncio.sleep(0.01)
        await loop.stop()
        assert not loop.running

    asyncio.run(scenario())

    assert sock.sent and sock.sent[0]["type"] == "live_update"
    assert metrics_snapshot()["broadcast"]["failed_ticks"] >= 1


def test_traffic_update_message_shape() -> None:
    store = CityDataStore()
    message = traffic_update_message(store, hour=9)

    assert message["type"] == "traffic_update"
    assert len(message["data"]) == 400
    assert isinstance(message["timestamp"], str)
    datetime.fromisoformat(message["timestamp"])
    # The greeting reads through the cache.
    assert [r["id"] for r in message["data"]] == [s.id for s in store.get_traffic(9)]


def test_ws_greeting_precedes_live_update(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "broadcast_interval_s", 0.05)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            second = ws.receive_json()

    assert first["type"] == "traffic_update"
    assert len(first["data"]) == 400
    assert "timestamp" in first
    assert second["type"] == "live_update"
    assert len(second["data"]["traffic"]) == 400
    assert len(second["data"]["pollution"]) == 15


def test_ws_subscribers_share_one_broadcast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "broadcast_interval_s", 3600.0)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
            assert ws_a.receive_json()["type"] == "traffic_update"
            assert ws_b.receive_json()["type"] == "traffic_update"
            _wait_for_subscribers(2)

            assert client.get("/metrics").json()["subscriber_count"] == 2

            sent = client.portal.call(app.state.broadcaster.tick)
            assert sent == 2

            update_a = ws_a.receive_json()
            update_b = ws_b.receive_json()
            assert update_a["type"] == update_b["type"] == "live_update"
            assert update_a == update_b

        # Both sockets closed: the hub drains.
        deadline = time.monotonic() + 2.0
        while len(app.state.hub) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(app.state.hub) == 0


def test_ws_ignores_client_messages(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "broadcast_interval_s", 3600.0)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "traffic_update"
            ws.send_text("hello")
            ws.send_bytes(b"\x00\x01")
            _wait_for_subscribers(1)
            assert client.portal.call(app.state.broadcaster.tick) == 1
            assert ws.receive_json()["type"] == "live_update"
