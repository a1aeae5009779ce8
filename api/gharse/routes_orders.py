"""Order placement and lookup routes."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .deps import get_dispatcher
from .domain.errors import OrderError, OrderNotFound
from .repos_sqlalchemy import orders_repo_sql
from .schemas import CreateOrderPayload
from .services import order_creation
from .services.dispatch import SideEffectDispatcher
from .utils.responses import ok, order_error

router = APIRouter(prefix="/api/orders")


@router.post("", status_code=201)
async def create_order(
    payload: CreateOrderPayload,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    """Place a new order; it stays editable for the grace period."""

    try:
        order = await order_creation.create_order(
            session, payload, dispatcher=dispatcher
        )
    except OrderError as exc:
        return order_error(exc)
    background.add_task(dispatcher.drain)
    return JSONResponse(
        ok(
            {
                "order": order.to_dict(),
                "message": "Order placed! You can still make changes.",
            }
        ),
        status_code=201,
        background=background,
    )


@router.get("/{order_id}")
async def get_order(
    order_id: str, session: AsyncSession = Depends(get_session)
):
    order = await orders_repo_sql.get_order(session, order_id)
    if order is None:
        return order_error(OrderNotFound(order_id))
    return ok({"order": order.to_dict()})
