import asyncio
from collections import defaultdict
from typing import DefaultDict, Iterable, List, Set, Any

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from ..logging import structlog


class NotificationHub:
    """Live websocket sessions keyed by user id; one user may have several tabs open."""

    def __init__(self) -> None:
        self._sockets: DefaultDict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._sockets[user_id].add(ws)
        structlog.get_logger().info("realtime_connected", user_id=user_id, sessions=len(self._sockets[user_id]))

    async def disconnect(self, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            remaining = self._sockets.get(user_id, set()) - {ws}
            if remaining:
                self._sockets[user_id] = remaining
            else:
                self._sockets.pop(user_id, None)

    async def _targets(self, user_ids: Iterable[str]) -> List[WebSocket]:
        async with self._lock:
            return [ws for uid in set(user_ids) for ws in self._sockets.get(uid, ())]

    async def send_to_user(self, user_id: str, event: str, payload: Any) -> None:
        await self.broadcast_to_users([user_id], event, payload)

    async def broadcast_to_users(self, user_ids: Iterable[str], event: str, payload: Any) -> None:
        message = {"event": event, "data": jsonable_encoder(payload)}
        for ws in await self._targets(user_ids):
            try:
                await ws.send_json(message)
            except Exception as e:
                structlog.get_logger().warning("realtime_send_failed", event=event, error=str(e))


hub = NotificationHub()


def emit(user_ids: Iterable, event: str, payload: Any) -> None:
    """Push an event from a sync route handler running in the worker threadpool."""
    targets = {str(u) for u in user_ids if u}
    if not targets:
        return
    import anyio

    async def _send():
        await hub.broadcast_to_users(targets, event, payload)

    try:
        anyio.from_thread.run(_send)  # type: ignore
    except RuntimeError as e:
        # Not on an anyio worker thread (scripts, shell)
        structlog.get_logger().info("realtime_emit_skipped", event=event, reason=str(e))
