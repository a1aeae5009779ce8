"""SQLAlchemy-backed repository helpers for orders.

These helpers implement the order store without any side effects beyond
database mutations. They operate on ``AsyncSession`` instances and never
commit: callers wrap them in ``async with session.begin()`` so that an item
replacement and the matching order update land together or not at all.

Order items are snapshotted with the unit price supplied at modification time
so that totals stay reproducible even if the menu changes later.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain import CandidateItem, OrderItemView, OrderStatus, OrderView
from ..domain.errors import InsufficientInventory
from ..models import MenuItem, Order, OrderItem
from ..pricing import line_subtotal


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; treat stored values as UTC."""

    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dec(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def to_view(order: Order) -> OrderView:
    """Convert an ORM ``Order`` (with items loaded) to an :class:`OrderView`."""

    return OrderView(
        id=order.id,
        order_number=order.order_number,
        status=OrderStatus(order.status),
        created_at=_aware(order.created_at),
        grace_period_expires_at=_aware(order.grace_period_expires_at),
        last_modified_at=_aware(order.last_modified_at),
        modification_count=order.modification_count or 0,
        subtotal=_dec(order.subtotal),
        tax=_dec(order.tax),
        delivery_fee=_dec(order.delivery_fee),
        discount=_dec(order.discount),
        total=_dec(order.total),
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        estimated_ready_at=_aware(order.estimated_ready_at),
        items=tuple(
            OrderItemView(
                id=item.id,
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                price=_dec(item.price),
                subtotal=_dec(item.subtotal),
                special_instructions=item.special_instructions,
            )
            for item in order.items
        ),
    )


async def get_order(
    session: AsyncSession, order_id: str, *, for_update: bool = False
) -> OrderView | None:
    """Return the order ``order_id`` with its items, or ``None``.

    ``for_update`` takes a row lock where the backend supports it so that
    concurrent modifications of the same order serialise.
    """

    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    order = result.scalar_one_or_none()
    return to_view(order) if order is not None else None


async def replace_items(
    session: AsyncSession, order_id: str, items: Iterable[CandidateItem]
) -> None:
    """Delete every item of ``order_id`` and insert ``items`` in their place."""

    await session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
    session.add_all(
        [
            OrderItem(
                order_id=order_id,
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                price=item.price,
                subtotal=line_subtotal(item),
                special_instructions=item.special_instructions,
            )
            for item in items
        ]
    )
    await session.flush()


async def update_order(session: AsyncSession, order_id: str, **values) -> None:
    """Persist ``values`` onto the order row."""

    await session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def get_menu_items(
    session: AsyncSession, item_ids: Iterable[str]
) -> dict[str, MenuItem]:
    ids = list(set(item_ids))
    if not ids:
        return {}
    result = await session.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
    return {item.id: item for item in result.scalars()}


async def insert_order(
    session: AsyncSession, order: Order, items: List[CandidateItem]
) -> None:
    """Insert ``order`` with ``items`` and decrement tracked inventory.

    Raises :class:`InsufficientInventory` when any tracked item would go
    negative; the caller's transaction then rolls back the whole creation.
    """

    session.add(order)
    await session.flush()

    menu = await get_menu_items(session, [i.menu_item_id for i in items])
    for item in items:
        session.add(
            OrderItem(
                order_id=order.id,
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                price=item.price,
                subtotal=line_subtotal(item),
                special_instructions=item.special_instructions,
            )
        )
        menu_item = menu.get(item.menu_item_id)
        if (
            menu_item is None
            or not menu_item.inventory_enabled
            or menu_item.inventory is None
        ):
            continue
        remaining = menu_item.inventory - item.quantity
        if remaining < 0:
            raise InsufficientInventory(menu_item.name, menu_item.inventory)
        menu_item.inventory = remaining
    await session.flush()


async def list_expired_pending(
    session: AsyncSession, now: datetime, max_window: timedelta
) -> List[str]:
    """Return ids of ``PENDING_CONFIRMATION`` orders whose window has run out.

    Orders without an expiry are considered expired once the maximum window
    measured from their creation time has passed.
    """

    result = await session.execute(
        select(Order.id)
        .where(Order.status == OrderStatus.PENDING_CONFIRMATION)
        .where(
            or_(
                Order.grace_period_expires_at < now,
                (Order.grace_period_expires_at.is_(None))
                & (Order.created_at <= now - max_window),
            )
        )
        .order_by(Order.created_at)
    )
    return [row[0] for row in result.all()]


__all__ = [
    "to_view",
    "get_order",
    "replace_items",
    "update_order",
    "get_menu_items",
    "insert_order",
    "list_expired_pending",
]
