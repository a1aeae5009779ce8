"""Grace-period workflows: modify, inspect, finalize and cancel.

Every mutating call runs in a single transaction on the session it is given
and reads the order with a row lock, so two concurrent edits of the same order
are applied one after the other. Side effects are handed to a
:class:`~.dispatch.SideEffectDispatcher` only after the commit succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings

from ..domain import CandidateItem, OrderStatus, OrderView
from ..domain import grace
from ..domain.errors import (
    OrderError,
    OrderNotFound,
    PersistenceFailure,
    Unauthorized,
)
from ..pricing import calculate_pricing
from ..repos_sqlalchemy import orders_repo_sql
from ..routes_metrics import (
    order_modifications_total,
    orders_cancelled_total,
    orders_finalized_total,
)
from .dispatch import SideEffectDispatcher

logger = logging.getLogger("orders")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ModificationResult:
    order: OrderView
    time_remaining_ms: int
    message: str
    finalized: bool


@dataclass(frozen=True)
class ModifiabilityStatus:
    order: OrderView
    can_modify: bool
    time_remaining_ms: int
    grace_period_expires_at: Optional[datetime]
    status: OrderStatus
    modification_count: int
    max_modifications: int

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "can_modify": self.can_modify,
            "time_remaining_ms": self.time_remaining_ms,
            "grace_period_expires_at": (
                self.grace_period_expires_at.isoformat()
                if self.grace_period_expires_at
                else None
            ),
            "status": self.status.value,
            "modification_count": self.modification_count,
            "max_modifications": self.max_modifications,
        }


@dataclass(frozen=True)
class FinalizeResult:
    order: OrderView
    already_finalized: bool
    message: str


def _ready_message(settings: Settings) -> str:
    return (
        "Order sent to kitchen! Estimated ready time: "
        f"{settings.preparation_minutes} minutes"
    )


async def _load_locked(session: AsyncSession, order_id: str) -> OrderView:
    order = await orders_repo_sql.get_order(session, order_id, for_update=True)
    if order is None:
        raise OrderNotFound(order_id)
    return order


async def modify_order(
    session: AsyncSession,
    order_id: str,
    candidates: Iterable[CandidateItem],
    *,
    finalize: bool = False,
    customer_id: str | None = None,
    dispatcher: SideEffectDispatcher | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> ModificationResult:
    """Replace the items of ``order_id`` with ``candidates``.

    Lines with ``quantity == 0`` are removed. Pricing is recomputed from the
    surviving lines and the grace period is extended up to its cap. With
    ``finalize`` the order moves to ``PENDING`` instead and the kitchen is
    notified.

    Raises a subclass of :class:`OrderError`; store failures surface as
    :class:`PersistenceFailure` and leave the order untouched.
    """

    settings = settings or get_settings()
    policy = grace.GracePolicy.from_settings(settings)
    now = now or _now()
    candidates = list(candidates)
    try:
        async with session.begin():
            order = await _load_locked(session, order_id)
            grace.ensure_modifiable(order, now, customer_id)
            items = grace.surviving_items(candidates)
            if not finalize:
                grace.ensure_modification_budget(order, policy)
            pricing = calculate_pricing(
                items,
                tax_rate=settings.tax_rate,
                delivery_fee=settings.delivery_fee,
                discount=order.discount,
            )
            values = {
                "subtotal": pricing.subtotal,
                "tax": pricing.tax,
                "delivery_fee": pricing.delivery_fee,
                "discount": pricing.discount,
                "total": pricing.total,
                "modification_count": order.modification_count + 1,
                "last_modified_at": now,
            }
            if finalize:
                values["status"] = OrderStatus.PENDING
                values["grace_period_expires_at"] = None
            else:
                values["grace_period_expires_at"] = grace.next_expiry(
                    order, now, policy
                )
            await orders_repo_sql.replace_items(session, order_id, items)
            await orders_repo_sql.update_order(session, order_id, **values)
            updated = await orders_repo_sql.get_order(session, order_id)
    except OrderError as exc:
        order_modifications_total.labels(result=exc.code).inc()
        logger.info(
            "modification rejected: %s", exc.code, extra={"order_id": order_id}
        )
        raise
    except SQLAlchemyError as exc:
        order_modifications_total.labels(result="SERVER_ERROR").inc()
        logger.error(
            "modification failed", exc_info=exc, extra={"order_id": order_id}
        )
        raise PersistenceFailure() from exc

    order_modifications_total.labels(result="ok").inc()
    if finalize:
        orders_finalized_total.labels(trigger="customer").inc()
        remaining = 0
        message = _ready_message(settings)
        if dispatcher is not None:
            dispatcher.order_finalized(updated)
    else:
        remaining = grace.time_remaining_ms(updated.grace_period_expires_at, now)
        message = (
            "Order updated! You have "
            f"{grace.minutes_left(remaining)} minutes to make more changes."
        )
        if dispatcher is not None:
            dispatcher.order_updated(updated)
    logger.info(
        "order modified (count=%d, finalized=%s)",
        updated.modification_count,
        finalize,
        extra={"order_id": order_id},
    )
    return ModificationResult(
        order=updated,
        time_remaining_ms=remaining,
        message=message,
        finalized=finalize,
    )


async def check_modifiability(
    session: AsyncSession,
    order_id: str,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> ModifiabilityStatus:
    """Report whether ``order_id`` can still be modified. Read only."""

    settings = settings or get_settings()
    now = now or _now()
    order = await orders_repo_sql.get_order(session, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    can_modify = grace.can_modify(order, now)
    return ModifiabilityStatus(
        order=order,
        can_modify=can_modify,
        time_remaining_ms=(
            grace.time_remaining_ms(order.grace_period_expires_at, now)
            if can_modify
            else 0
        ),
        grace_period_expires_at=order.grace_period_expires_at,
        status=order.status,
        modification_count=order.modification_count,
        max_modifications=settings.max_modifications,
    )


async def finalize_expired(
    session: AsyncSession,
    order_id: str,
    *,
    customer_id: str | None = None,
    dispatcher: SideEffectDispatcher | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
    trigger: str = "timeout",
) -> FinalizeResult:
    """Move ``order_id`` to ``PENDING`` once its grace period has run out.

    Calling this for an order that is already ``PENDING`` is a no-op that
    reports ``already_finalized``; nothing is broadcast twice.
    """

    settings = settings or get_settings()
    policy = grace.GracePolicy.from_settings(settings)
    now = now or _now()
    already = False
    try:
        async with session.begin():
            order = await _load_locked(session, order_id)
            if customer_id and order.customer_id and customer_id != order.customer_id:
                raise Unauthorized("finalize")
            if order.status is OrderStatus.PENDING:
                already = True
                updated = order
            else:
                grace.ensure_finalizable_by_timeout(order, now, policy)
                await orders_repo_sql.update_order(
                    session,
                    order_id,
                    status=OrderStatus.PENDING,
                    grace_period_expires_at=None,
                )
                updated = await orders_repo_sql.get_order(session, order_id)
    except SQLAlchemyError as exc:
        logger.error("finalize failed", exc_info=exc, extra={"order_id": order_id})
        raise PersistenceFailure() from exc

    if already:
        return FinalizeResult(
            order=updated,
            already_finalized=True,
            message="Order already finalized",
        )
    orders_finalized_total.labels(trigger=trigger).inc()
    logger.info("order finalized by %s", trigger, extra={"order_id": order_id})
    if dispatcher is not None:
        dispatcher.order_finalized(updated)
    return FinalizeResult(
        order=updated,
        already_finalized=False,
        message=_ready_message(settings),
    )


async def cancel_order(
    session: AsyncSession,
    order_id: str,
    reason: str,
    *,
    customer_id: str | None = None,
    dispatcher: SideEffectDispatcher | None = None,
    now: datetime | None = None,
) -> OrderView:
    """Cancel ``order_id`` while it is still awaiting confirmation.

    Allowed even after the grace timer lapsed, as long as the order has not
    been finalized yet.
    """

    now = now or _now()
    try:
        async with session.begin():
            order = await _load_locked(session, order_id)
            grace.ensure_cancellable(order, customer_id)
            await orders_repo_sql.update_order(
                session,
                order_id,
                status=OrderStatus.CANCELLED,
                grace_period_expires_at=None,
                cancel_reason=reason,
                last_modified_at=now,
            )
            updated = await orders_repo_sql.get_order(session, order_id)
    except SQLAlchemyError as exc:
        logger.error("cancel failed", exc_info=exc, extra={"order_id": order_id})
        raise PersistenceFailure() from exc

    orders_cancelled_total.inc()
    logger.info("order cancelled", extra={"order_id": order_id})
    if dispatcher is not None:
        dispatcher.order_cancelled(updated, reason)
    return updated


__all__ = [
    "ModificationResult",
    "ModifiabilityStatus",
    "FinalizeResult",
    "modify_order",
    "check_modifiability",
    "finalize_expired",
    "cancel_order",
]
