from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from .logging_utils import log_event
from .metrics_store import record_broadcast
from .models import LiveUpdateMessage, LiveUpdatePayload, TrafficUpdateMessage
from .store import CityDataStore


def _is_open(ws: WebSocket) -> bool:
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


def _client_label(ws: WebSocket) -> str:
    client = ws.client
    return f"{client.host}:{client.port}" if client else "unknown"


class SubscriberHub:
    """Open live-update connections. No per-client state beyond membership."""

    def __init__(self) -> None:
        self._sockets: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def register(self, ws: WebSocket) -> None:
        async with self._lock:
            if ws not in self._sockets:
                self._sockets.append(ws)

    async def unregister(self, ws: WebSocket) -> None:
        async with self._lock:
            if ws in self._sockets:
                self._sockets.remove(ws)

    def __len__(self) -> int:
        return len(self._sockets)

    async def send_all(self, text: str) -> tuple[int, int]:
        """Send one serialised message to every open subscriber.

        Returns ``(sent, failed)``. Closed sockets are skipped; a socket whose
        send fails is dropped and not retried.
        """
        async with self._lock:
            targets = list(self._sockets)

        sent = 0
        failed = 0
        for ws in targets:
            if not _is_open(ws):
                continue
            try:
                await ws.send_text(text)
                sent += 1
            except Exception as e:
                failed += 1
                log_event(
                    "broadcast_send_failed",
                    level=logging.WARNING,
                    client=_client_label(ws),
                    error=str(e),
                )
                await self.unregister(ws)
        return sent, failed


def traffic_update_message(store: CityDataStore, *, hour: int) -> dict[str, Any]:
    """Greeting sent to a newly opened connection."""
    message = TrafficUpdateMessage(data=store.get_traffic(hour), timestamp=datetime.now(UTC))
    return message.to_wire()


class BroadcastLoop:
    """Idle -> (interval elapses) -> generate -> broadcast -> idle."""

    def __init__(
        self,
        store: CityDataStore,
        hub: SubscriberHub,
        *,
        interval_s: float,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.hub = hub
        self.interval_s = float(interval_s)
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    def current_hour(self) -> int:
        return self._clock().hour

    def build_message(self, hour: int) -> LiveUpdateMessage:
        # The live path always regenerates, overwriting the (hour, 0) slot.
        traffic = self.store.generate_traffic(hour, 0.0)
        pollution = self.store.get_pollution()
        return LiveUpdateMessage(
            data=LiveUpdatePayload(traffic=traffic, pollution=pollution, timestamp=datetime.now(UTC))
        )

    async def tick(self) -> int:
        hour = self.current_hour()
        message = self.build_message(hour)
        text = json.dumps(message.to_wire())
        sent, failed = await self.hub.send_all(text)
        record_broadcast(sent=sent, failed=failed)
        log_event(
            "live_update_broadcast",
            level=logging.DEBUG,
            hour=hour,
            subscribers=len(self.hub),
            sent=sent,
            failed=failed,
        )
        return sent

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.tick()
            except Exception as e:
                record_broadcast(sent=0, failed=0, tick_failed=True)
                log_event("broadcast_tick_failed", level=logging.ERROR, error=str(e))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="citypulse-broadcast")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
