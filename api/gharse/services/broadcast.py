from __future__ import annotations

"""Realtime fan-out of order events over Redis pub/sub.

Kitchen screens subscribe to ``rt:kitchen``; a customer tracking page
subscribes to ``rt:order:{order_id}``. The websocket routes forward whatever
is published here.
"""

import json
from datetime import datetime, timezone
from typing import Any

from ..domain import OrderStatus, status_message
from ..routes_metrics import ws_messages_total

KITCHEN_CHANNEL = "rt:kitchen"


def order_channel(order_id: str) -> str:
    return f"rt:order:{order_id}"


def _encode(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=str)


class Broadcaster:
    """Publish order events to Redis channels."""

    def __init__(self, redis) -> None:
        self.redis = redis

    async def broadcast_new_order(self, summary: dict[str, Any]) -> None:
        """Announce a finalized order to the kitchen."""

        payload = {
            "type": "new_order",
            **summary,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis.publish(KITCHEN_CHANNEL, _encode(payload))
        ws_messages_total.inc()

    async def broadcast_order_update(
        self,
        order_id: str,
        status: OrderStatus,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Publish a status change to the kitchen and the order's own channel."""

        payload = {
            "type": "order_update",
            "order_id": order_id,
            "status": status.value,
            "message": status_message(status),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(metadata or {}),
        }
        body = _encode(payload)
        await self.redis.publish(KITCHEN_CHANNEL, body)
        await self.redis.publish(order_channel(order_id), body)
        ws_messages_total.inc(2)


__all__ = ["Broadcaster", "KITCHEN_CHANNEL", "order_channel"]
