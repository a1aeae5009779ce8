from __future__ import annotations

"""Customer notification enqueueing.

Notifications are not sent inline. Each one becomes a row in
``notifications_outbox`` which ``scripts/notify_worker.py`` renders and
delivers with retries.
"""

import logging
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import OrderView
from ..models import NotificationOutbox

logger = logging.getLogger("notify")

ORDER_RECEIVED = "order_received"
ORDER_CONFIRMED = "order_confirmed"
ORDER_PREPARING = "order_preparing"
ORDER_READY = "order_ready"
ORDER_OUT_FOR_DELIVERY = "order_out_for_delivery"
ORDER_DELIVERED = "order_delivered"
ORDER_CANCELLED = "order_cancelled"

STATUS_TAGS = {
    ORDER_RECEIVED: "Order received",
    ORDER_CONFIRMED: "Order confirmed",
    ORDER_PREPARING: "Your food is being prepared",
    ORDER_READY: "Your order is ready",
    ORDER_OUT_FOR_DELIVERY: "Your order is on its way",
    ORDER_DELIVERED: "Order delivered",
    ORDER_CANCELLED: "Order cancelled",
}

# tags with a dedicated template; the rest share ``status_update``
DEDICATED_TEMPLATES = {ORDER_RECEIVED, ORDER_CONFIRMED, ORDER_CANCELLED}


def _target(order: OrderView, channel: str) -> str:
    if channel == "email":
        return order.customer_email
    if channel in ("sms", "whatsapp"):
        return order.customer_phone
    return ""


def build_payload(order: OrderView, status_tag: str, restaurant: str) -> dict:
    """Return the outbox payload rendered later by the worker."""

    template = status_tag if status_tag in DEDICATED_TEMPLATES else "status_update"
    return {
        "template": template,
        "subject": "{{ restaurant }}: " + STATUS_TAGS[status_tag] + " ({{ order_number }})",
        "vars": {
            "restaurant": restaurant,
            "order_number": order.order_number,
            "customer_name": order.customer_name,
            "status": order.status.value,
            "status_text": STATUS_TAGS[status_tag],
            "total": f"{order.total:.2f}",
            "items_count": sum(i.quantity for i in order.items),
        },
    }


class Notifier:
    """Queue customer notifications for an order."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        channels: Sequence[str] = ("email", "sms"),
        restaurant: str = "Bantu's Kitchen",
    ) -> None:
        self.sessionmaker = sessionmaker
        self.channels = tuple(channels)
        self.restaurant = restaurant

    async def send_status_update(
        self,
        order: OrderView,
        status_tag: str,
        via: Iterable[str] | None = None,
    ) -> int:
        """Queue ``status_tag`` for every configured channel with a target.

        Returns the number of outbox rows written.
        """

        if status_tag not in STATUS_TAGS:
            raise ValueError(f"unknown status tag {status_tag}")
        payload = build_payload(order, status_tag, self.restaurant)
        rows = []
        for channel in via or self.channels:
            target = _target(order, channel)
            if not target:
                logger.info(
                    "no %s target for order", channel, extra={"order_id": order.id}
                )
                continue
            rows.append(
                NotificationOutbox(
                    order_id=order.id,
                    event=status_tag,
                    payload=payload,
                    channel=channel,
                    target=target,
                )
            )
        if not rows:
            return 0
        async with self.sessionmaker() as session:
            async with session.begin():
                session.add_all(rows)
        return len(rows)


__all__ = [
    "Notifier",
    "build_payload",
    "STATUS_TAGS",
    "ORDER_RECEIVED",
    "ORDER_CONFIRMED",
    "ORDER_PREPARING",
    "ORDER_READY",
    "ORDER_OUT_FOR_DELIVERY",
    "ORDER_DELIVERED",
    "ORDER_CANCELLED",
]
