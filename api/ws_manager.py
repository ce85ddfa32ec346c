"""WebSocket connection manager plus the relay feeding it from the pipeline."""

import asyncio
import json
import time

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from config import configure_logging
from processor.events import Event
from simulator.schemas import Sample

CHANNELS = ("samples", "notifications", "push")

# Channels whose messages may be dropped when a client is being sent to too often.
THROTTLED_CHANNELS = {"samples"}


class ConnectionState:
    __slots__ = ("websocket", "channels", "last_send_time")

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.channels: set[str] = set(CHANNELS)
        self.last_send_time: float = 0.0


class WebSocketManager:
    """
    Manages WebSocket connections with:
    - Per-connection throttling for high-rate channels (sample stream)
    - Channel-based filtering (clients choose what data to receive)
    - Concurrent broadcast with error handling
    """

    def __init__(self, throttle_ms: int = 100):
        self._connections: dict[WebSocket, ConnectionState] = {}
        self._throttle_interval = throttle_ms / 1000.0
        self.log = configure_logging("ws-manager")

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._connections[websocket] = ConnectionState(websocket)
        self.log.info("ws_connected", total=len(self._connections))

    def disconnect(self, websocket: WebSocket):
        self._connections.pop(websocket, None)
        self.log.info("ws_disconnected", total=len(self._connections))

    def update_filters(self, websocket: WebSocket, channels: list[str]):
        state = self._connections.get(websocket)
        if state:
            state.channels = {c for c in channels if c in CHANNELS}

    async def broadcast(self, channel: str, data: dict):
        """Send data to all clients subscribed to the given channel."""
        if not self._connections:
            return

        now = time.time()
        message = json.dumps({"channel": channel, "data": data})
        throttled = channel in THROTTLED_CHANNELS

        tasks = []
        for ws, state in list(self._connections.items()):
            if channel not in state.channels:
                continue
            if throttled:
                if now - state.last_send_time < self._throttle_interval:
                    continue
                state.last_send_time = now
            tasks.append(self._safe_send(ws, message))

        if tasks:
            await asyncio.gather(*tasks)

    async def _safe_send(self, ws: WebSocket, message: str):
        try:
            if ws.client_state == WebSocketState.CONNECTED:
                await ws.send_text(message)
        except Exception as e:
            self.log.warning("ws_send_failed", error=str(e))
            self.disconnect(ws)

    @property
    def connection_count(self) -> int:
        return len(self._connections)


class NotificationRelay:
    """
    Bridges synchronous pipeline callbacks to WebSocket broadcasts.

    Dispatcher sinks, store observers and the platform notifier are plain
    callables invoked on the event loop thread; they only enqueue. ``run``
    drains the queue and broadcasts.
    """

    def __init__(self, ws_manager: WebSocketManager, max_pending: int = 1000):
        self._ws_manager = ws_manager
        self._queue: asyncio.Queue[tuple[str, dict]] = asyncio.Queue(maxsize=max_pending)
        self._dropped = 0
        self.log = configure_logging("notification-relay")

    def _enqueue(self, channel: str, data: dict):
        try:
            self._queue.put_nowait((channel, data))
        except asyncio.QueueFull:
            self._dropped += 1
            self.log.warning("relay_queue_full", channel=channel, dropped=self._dropped)

    def on_event(self, event: Event):
        self._enqueue("notifications", event.to_dict())

    def on_sample(self, sample: Sample):
        self._enqueue("samples", sample.model_dump(mode="json"))

    def push(self, title: str, body: str):
        self._enqueue("push", {"title": title, "body": body})

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        return self._dropped

    async def run(self):
        """Forward queued messages to WebSocket clients until cancelled."""
        while True:
            channel, data = await self._queue.get()
            try:
                await self._ws_manager.broadcast(channel, data)
            except Exception as e:
                self.log.error("relay_broadcast_error", channel=channel, error=str(e))
