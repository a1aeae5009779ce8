"""WebSocket feeds for the kitchen dashboard and order tracking.

Both endpoints relay messages published by
:class:`~.services.broadcast.Broadcaster` on Redis.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from .routes_metrics import ws_clients_gauge
from .services.broadcast import KITCHEN_CHANNEL, order_channel

logger = logging.getLogger("api")

router = APIRouter()

QUEUE_SIZE = 100


async def _relay(websocket: WebSocket, channel: str) -> None:
    await websocket.accept()
    pubsub = websocket.app.state.redis.pubsub()
    await pubsub.subscribe(channel)
    queue: asyncio.Queue[dict | None] = asyncio.Queue(maxsize=QUEUE_SIZE)
    ws_clients_gauge.inc()

    async def reader():
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    queue.put_nowait(json.loads(message["data"]))
                except asyncio.QueueFull:
                    logger.warning("slow websocket consumer on %s", channel)
                    await websocket.close(
                        code=status.WS_1013_TRY_AGAIN_LATER, reason="RETRY"
                    )
                    break
        finally:
            await queue.put(None)

    reader_task = asyncio.create_task(reader())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            await websocket.send_json(item)
    except WebSocketDisconnect:  # pragma: no cover - network disconnect
        pass
    finally:
        reader_task.cancel()
        ws_clients_gauge.dec()
        await pubsub.unsubscribe(channel)
        await pubsub.close()


@router.websocket("/ws/kitchen")
async def kitchen_ws(websocket: WebSocket) -> None:
    """Stream new and updated orders to the kitchen dashboard."""

    await _relay(websocket, KITCHEN_CHANNEL)


@router.websocket("/ws/orders/{order_id}")
async def order_ws(websocket: WebSocket, order_id: str) -> None:
    """Stream status updates for a single order."""

    await _relay(websocket, order_channel(order_id))
