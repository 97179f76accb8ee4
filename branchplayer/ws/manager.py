from typing import Any, Dict, Set
from fastapi import WebSocket
import asyncio
import logging

from branchplayer.models.events import WsEvent
from branchplayer.workers.background import BackgroundRunner

log = logging.getLogger("ws")


class WebSocketManager:
    """UI clients of this device: the screen and its audio driver."""

    def __init__(self, runner: BackgroundRunner) -> None:
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._runner = runner

    @property
    def connections(self) -> Set[WebSocket]:
        return self._connections

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self._connections.add(ws)
        log.info("ws_connected", extra={"clients": len(self._connections)})

    async def disconnect(self, ws: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(ws)
        log.info("ws_disconnected", extra={"clients": len(self._connections)})

    async def broadcast(self, message: dict) -> None:
        async with self._lock:
            dead = []
            for ws in self._connections:
                try:
                    await ws.send_json(message)
                except Exception:
                    dead.append(ws)

            for ws in dead:
                self._connections.discard(ws)

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        """Event sink for the device context; never blocks the caller."""
        if not self._connections:
            return
        event = WsEvent(type=event_type, data=data)
        self._runner.spawn(self.broadcast(event.model_dump(mode="json")), name=f"ws:{event_type}")
