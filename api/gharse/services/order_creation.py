"""Order placement.

New orders start in ``PENDING_CONFIRMATION`` so the customer gets a short
window to change their mind before the kitchen sees anything.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings

from ..domain import CandidateItem, OrderStatus, OrderView
from ..domain.errors import OrderError, PersistenceFailure, ValidationFailed
from ..domain.grace import GracePolicy
from ..models import Order
from ..pricing import calculate_pricing
from ..repos_sqlalchemy import orders_repo_sql
from ..routes_metrics import orders_created_total
from ..schemas import CreateOrderPayload
from .dispatch import SideEffectDispatcher

logger = logging.getLogger("orders")


def _order_number() -> str:
    return f"BK-{secrets.randbelow(10**6):06d}"


async def create_order(
    session: AsyncSession,
    payload: CreateOrderPayload,
    *,
    dispatcher: SideEffectDispatcher | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> OrderView:
    """Persist a new order priced from the menu catalog.

    Inventory for tracked items is decremented in the same transaction; if
    any item runs short nothing is written.
    """

    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    if payload.order_type == "delivery" and payload.delivery_address is None:
        raise ValidationFailed(
            "Delivery address is required for delivery orders", "delivery_address"
        )
    address = payload.delivery_address
    try:
        async with session.begin():
            menu = await orders_repo_sql.get_menu_items(
                session, [line.menu_item_id for line in payload.items]
            )
            lines = []
            for line in payload.items:
                item = menu.get(line.menu_item_id)
                if item is None or not item.is_available:
                    raise ValidationFailed(
                        f"Menu item {line.menu_item_id} is not available", "items"
                    )
                lines.append(
                    CandidateItem(
                        menu_item_id=line.menu_item_id,
                        quantity=line.quantity,
                        price=Decimal(str(item.price)),
                        special_instructions=line.special_instructions,
                    )
                )
            pricing = calculate_pricing(
                lines,
                tax_rate=settings.tax_rate,
                delivery_fee=settings.delivery_fee,
                discount=payload.discount,
            )
            if pricing.subtotal < Decimal(str(settings.minimum_order)):
                raise ValidationFailed(
                    f"Minimum order amount is ₹{settings.minimum_order:g}",
                    "pricing.subtotal",
                )
            if pricing.total < 0:
                raise ValidationFailed("Discount exceeds order value", "discount")

            expiry = None
            if settings.set_grace_on_create:
                expiry = now + GracePolicy.from_settings(settings).initial
            ready_in = settings.preparation_minutes + settings.preparation_buffer_minutes
            order = Order(
                id=f"order-{uuid.uuid4().hex}",
                order_number=_order_number(),
                customer_id=payload.customer.id,
                customer_name=payload.customer.name,
                customer_email=payload.customer.email,
                customer_phone=payload.customer.phone,
                delivery_address=address.street if address else "",
                delivery_city=address.city if address else "",
                delivery_zip=address.zip_code if address else "",
                delivery_notes=(address.delivery_instructions or "") if address else "",
                status=OrderStatus.PENDING_CONFIRMATION,
                created_at=now,
                grace_period_expires_at=expiry,
                modification_count=0,
                subtotal=pricing.subtotal,
                tax=pricing.tax,
                delivery_fee=pricing.delivery_fee,
                discount=pricing.discount,
                total=pricing.total,
                payment_method=payload.payment_method,
                estimated_ready_at=now + timedelta(minutes=ready_in),
                special_instructions=payload.special_instructions,
            )
            await orders_repo_sql.insert_order(session, order, lines)
            view = await orders_repo_sql.get_order(session, order.id)
    except OrderError:
        raise
    except SQLAlchemyError as exc:
        logger.error("order creation failed", exc_info=exc)
        raise PersistenceFailure() from exc

    orders_created_total.inc()
    logger.info(
        "order %s placed, awaiting confirmation",
        view.order_number,
        extra={"order_id": view.id},
    )
    if dispatcher is not None:
        dispatcher.order_updated(view, awaiting_confirmation=True)
    return view


__all__ = ["create_order"]
