"""Grace-period routes: modify, inspect, finalize and cancel.

Every mutation answers with the standard envelope; side effects are drained
after the response has been sent.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .deps import get_dispatcher
from .domain import CandidateItem
from .domain.errors import OrderError
from .schemas import CancelPayload, FinalizePayload, ModifyOrderPayload
from .services import grace_period
from .services.dispatch import SideEffectDispatcher
from .utils.responses import ok, order_error

router = APIRouter(prefix="/api/orders")


@router.post("/modify")
async def modify_order(
    payload: ModifyOrderPayload,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    """Replace the order's items while the grace period is open."""

    candidates = [
        CandidateItem(
            menu_item_id=item.menu_item_id,
            quantity=item.quantity,
            price=Decimal(str(item.price)),
            special_instructions=item.special_instructions,
        )
        for item in payload.items
    ]
    try:
        result = await grace_period.modify_order(
            session,
            payload.order_id,
            candidates,
            finalize=payload.finalize,
            customer_id=payload.customer_id,
            dispatcher=dispatcher,
        )
    except OrderError as exc:
        return order_error(exc)
    background.add_task(dispatcher.drain)
    return ok(
        {
            "order": result.order.to_dict(),
            "time_remaining_ms": result.time_remaining_ms,
            "finalized": result.finalized,
            "message": result.message,
        }
    )


@router.get("/modify")
async def check_modifiability(
    order_id: str = Query(..., alias="orderId", min_length=1),
    session: AsyncSession = Depends(get_session),
):
    try:
        status = await grace_period.check_modifiability(session, order_id)
    except OrderError as exc:
        return order_error(exc)
    return ok(status.to_dict())


@router.post("/finalize")
async def finalize_order(
    payload: FinalizePayload,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    """Send an order to the kitchen once its grace period has run out."""

    try:
        result = await grace_period.finalize_expired(
            session,
            payload.order_id,
            customer_id=payload.customer_id,
            dispatcher=dispatcher,
        )
    except OrderError as exc:
        return order_error(exc)
    background.add_task(dispatcher.drain)
    return ok(
        {
            "order": result.order.to_dict(),
            "already_finalized": result.already_finalized,
            "message": result.message,
        }
    )


@router.post("/cancel")
async def cancel_order(
    payload: CancelPayload,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    try:
        order = await grace_period.cancel_order(
            session,
            payload.order_id,
            payload.reason,
            customer_id=payload.customer_id,
            dispatcher=dispatcher,
        )
    except OrderError as exc:
        return order_error(exc)
    background.add_task(dispatcher.drain)
    return ok({"order": order.to_dict(), "message": "Order was cancelled."})
