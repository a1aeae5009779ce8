"""Fire-and-forget side effects for order workflow transitions.

Broadcasts and notifications run as detached tasks after the order change has
been committed. A failing side effect is logged, counted and reported but
never reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Set

from ..domain import OrderStatus, OrderView
from ..obs import capture_exception
from ..routes_metrics import side_effect_failures_total
from .broadcast import Broadcaster
from .notifications import ORDER_CANCELLED, ORDER_RECEIVED, Notifier

logger = logging.getLogger("orders")


class SideEffectDispatcher:
    """Schedule broadcasts and notifications on the running event loop."""

    def __init__(self, broadcaster: Broadcaster, notifier: Notifier) -> None:
        self.broadcaster = broadcaster
        self.notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    def order_finalized(self, order: OrderView) -> None:
        self._spawn(
            "broadcast_new_order",
            order.id,
            self.broadcaster.broadcast_new_order(order.summary()),
        )
        self._spawn(
            "notify_order_received",
            order.id,
            self.notifier.send_status_update(order, ORDER_RECEIVED),
        )

    def order_updated(self, order: OrderView, **metadata: Any) -> None:
        metadata.setdefault(
            "awaiting_confirmation",
            order.status is OrderStatus.PENDING_CONFIRMATION,
        )
        metadata.setdefault("modification_count", order.modification_count)
        self._spawn(
            "broadcast_order_update",
            order.id,
            self.broadcaster.broadcast_order_update(order.id, order.status, metadata),
        )

    def order_cancelled(self, order: OrderView, reason: str) -> None:
        self._spawn(
            "broadcast_order_update",
            order.id,
            self.broadcaster.broadcast_order_update(
                order.id, OrderStatus.CANCELLED, {"reason": reason}
            ),
        )
        self._spawn(
            "notify_order_cancelled",
            order.id,
            self.notifier.send_status_update(order, ORDER_CANCELLED),
        )

    def _spawn(self, effect: str, order_id: str, coro: Awaitable[None]) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._guard(effect, order_id, coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _guard(self, effect: str, order_id: str, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as exc:
            side_effect_failures_total.labels(effect=effect).inc()
            logger.warning(
                "side effect %s failed: %s",
                effect,
                exc,
                extra={"order_id": order_id},
            )
            capture_exception(exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled side effect to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending))


__all__ = ["SideEffectDispatcher"]
