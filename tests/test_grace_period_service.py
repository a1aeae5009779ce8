import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from api.gharse.domain import CandidateItem, OrderStatus
from api.gharse.domain.errors import (
    EmptyOrder,
    GraceStillActive,
    InvalidOrderState,
    ModificationLimit,
    OrderNotFound,
    PersistenceFailure,
    Unauthorized,
    WindowExpired,
)
from api.gharse.repos_sqlalchemy import orders_repo_sql
from api.gharse.services import grace_period
from tests._seed_orders import T0, load_order, seed_order

SCENARIO_ITEMS = [
    CandidateItem("garlic-naan", 2, Decimal("100")),
    CandidateItem("mango-lassi", 1, Decimal("50")),
]


def _modify(sessionmaker, order_id, items, **kwargs):
    async def _run():
        async with sessionmaker() as session:
            return await grace_period.modify_order(session, order_id, items, **kwargs)

    return asyncio.run(_run())


def _call(sessionmaker, fn, *args, **kwargs):
    async def _run():
        async with sessionmaker() as session:
            return await fn(session, *args, **kwargs)

    return asyncio.run(_run())


def test_modification_scenarios(sessionmaker, settings, dispatcher):
    order_id = seed_order(sessionmaker, expires_in=None)

    first = _modify(
        sessionmaker,
        order_id,
        SCENARIO_ITEMS,
        settings=settings,
        dispatcher=dispatcher,
        now=T0 + timedelta(seconds=30),
    )
    assert first.order.subtotal == Decimal("250.00")
    assert first.order.tax == Decimal("12.50")
    assert first.order.total == Decimal("312.50")
    assert first.order.grace_period_expires_at == T0 + timedelta(minutes=3)
    assert first.order.modification_count == 1
    assert first.message == "Order updated! You have 3 minutes to make more changes."
    assert dispatcher.calls == [("updated", order_id, {})]

    second = _modify(
        sessionmaker,
        order_id,
        SCENARIO_ITEMS,
        settings=settings,
        now=T0 + timedelta(minutes=2, seconds=50),
    )
    assert second.order.grace_period_expires_at == T0 + timedelta(
        minutes=4, seconds=50
    )
    assert second.time_remaining_ms == 120_000

    with pytest.raises(WindowExpired):
        _modify(
            sessionmaker,
            order_id,
            SCENARIO_ITEMS,
            settings=settings,
            now=T0 + timedelta(minutes=5, seconds=1),
        )
    assert load_order(sessionmaker, order_id).modification_count == 2


def test_finalizing_modification(sessionmaker, settings, dispatcher):
    order_id = seed_order(sessionmaker)

    result = _modify(
        sessionmaker,
        order_id,
        SCENARIO_ITEMS,
        finalize=True,
        settings=settings,
        dispatcher=dispatcher,
        now=T0 + timedelta(minutes=1),
    )

    assert result.finalized
    assert result.order.status is OrderStatus.PENDING
    assert result.order.grace_period_expires_at is None
    assert result.time_remaining_ms == 0
    assert result.message == "Order sent to kitchen! Estimated ready time: 40 minutes"
    assert dispatcher.calls == [("finalized", order_id)]


def test_items_are_replaced(sessionmaker, settings):
    order_id = seed_order(
        sessionmaker,
        items=[("butter-chicken", 1, "200.00"), ("garlic-naan", 1, "100.00")],
    )
    _modify(
        sessionmaker,
        order_id,
        [
            CandidateItem("butter-chicken", 0, Decimal("200")),
            CandidateItem("garlic-naan", 3, Decimal("100"), "extra butter"),
        ],
        settings=settings,
        now=T0 + timedelta(seconds=10),
    )
    order = load_order(sessionmaker, order_id)
    assert [(i.menu_item_id, i.quantity) for i in order.items] == [("garlic-naan", 3)]
    assert order.items[0].subtotal == Decimal("300.00")
    assert order.items[0].special_instructions == "extra butter"
    assert order.total == sum(i.subtotal for i in order.items) + order.tax + Decimal(
        "50.00"
    )


def test_non_pending_confirmation_is_left_untouched(sessionmaker, settings):
    order_id = seed_order(sessionmaker, status=OrderStatus.PENDING, expires_in=None)
    before = load_order(sessionmaker, order_id)

    with pytest.raises(InvalidOrderState) as exc:
        _modify(sessionmaker, order_id, SCENARIO_ITEMS, settings=settings, now=T0)

    assert exc.value.current_status == "PENDING"
    assert load_order(sessionmaker, order_id) == before


def test_all_removed_signals_cancel_without_changes(sessionmaker, settings):
    order_id = seed_order(sessionmaker)
    before = load_order(sessionmaker, order_id)

    with pytest.raises(EmptyOrder):
        _modify(
            sessionmaker,
            order_id,
            [CandidateItem("butter-chicken", 0, Decimal("200"))],
            settings=settings,
            now=T0,
        )

    assert load_order(sessionmaker, order_id) == before


def test_unknown_order(sessionmaker, settings):
    with pytest.raises(OrderNotFound):
        _modify(sessionmaker, "order-missing", SCENARIO_ITEMS, settings=settings)


def test_other_customer_cannot_modify(sessionmaker, settings):
    order_id = seed_order(sessionmaker)
    with pytest.raises(Unauthorized):
        _modify(
            sessionmaker,
            order_id,
            SCENARIO_ITEMS,
            customer_id="cust-2",
            settings=settings,
            now=T0,
        )


def test_modification_limit_still_allows_finalize(sessionmaker, settings):
    order_id = seed_order(sessionmaker, modification_count=10)
    with pytest.raises(ModificationLimit):
        _modify(sessionmaker, order_id, SCENARIO_ITEMS, settings=settings, now=T0)

    result = _modify(
        sessionmaker, order_id, SCENARIO_ITEMS, finalize=True, settings=settings, now=T0
    )
    assert result.order.status is OrderStatus.PENDING


def test_store_failure_is_retryable_and_rolls_back(
    sessionmaker, settings, monkeypatch
):
    order_id = seed_order(sessionmaker)
    before = load_order(sessionmaker, order_id)

    async def _broken_update(session, order_id, **values):
        raise OperationalError("UPDATE orders", {}, Exception("disk I/O error"))

    monkeypatch.setattr(orders_repo_sql, "update_order", _broken_update)

    with pytest.raises(PersistenceFailure) as exc:
        _modify(sessionmaker, order_id, SCENARIO_ITEMS, settings=settings, now=T0)

    assert exc.value.code == "SERVER_ERROR"
    assert exc.value.details == {"retryable": True}
    # item replacement ran before the failure and must have been rolled back
    assert load_order(sessionmaker, order_id) == before


def test_check_modifiability(sessionmaker, settings):
    order_id = seed_order(sessionmaker)

    status = _call(
        sessionmaker,
        grace_period.check_modifiability,
        order_id,
        settings=settings,
        now=T0 + timedelta(minutes=1),
    )
    assert status.can_modify
    assert status.time_remaining_ms == 120_000
    data = status.to_dict()
    assert data["max_modifications"] == 10
    assert data["order"]["id"] == order_id
    assert data["order"]["status"] == "PENDING_CONFIRMATION"

    expired = _call(
        sessionmaker,
        grace_period.check_modifiability,
        order_id,
        settings=settings,
        now=T0 + timedelta(minutes=4),
    )
    assert not expired.can_modify
    assert expired.time_remaining_ms == 0
    assert expired.status is OrderStatus.PENDING_CONFIRMATION


def test_finalize_expired_is_idempotent(sessionmaker, settings, dispatcher):
    order_id = seed_order(sessionmaker)

    with pytest.raises(GraceStillActive):
        _call(
            sessionmaker,
            grace_period.finalize_expired,
            order_id,
            settings=settings,
            now=T0 + timedelta(minutes=1),
        )

    result = _call(
        sessionmaker,
        grace_period.finalize_expired,
        order_id,
        dispatcher=dispatcher,
        settings=settings,
        now=T0 + timedelta(minutes=3, seconds=1),
    )
    assert not result.already_finalized
    assert result.order.status is OrderStatus.PENDING
    assert result.order.grace_period_expires_at is None

    again = _call(
        sessionmaker,
        grace_period.finalize_expired,
        order_id,
        dispatcher=dispatcher,
        settings=settings,
        now=T0 + timedelta(minutes=4),
    )
    assert again.already_finalized
    assert dispatcher.calls == [("finalized", order_id)]


def test_finalize_rejects_cancelled(sessionmaker, settings):
    order_id = seed_order(sessionmaker, status=OrderStatus.CANCELLED, expires_in=None)
    with pytest.raises(InvalidOrderState):
        _call(
            sessionmaker,
            grace_period.finalize_expired,
            order_id,
            settings=settings,
            now=T0 + timedelta(minutes=10),
        )


def test_cancel_during_grace(sessionmaker, dispatcher):
    order_id = seed_order(sessionmaker)

    order = _call(
        sessionmaker,
        grace_period.cancel_order,
        order_id,
        "ordered twice",
        customer_id="cust-1",
        dispatcher=dispatcher,
        now=T0 + timedelta(minutes=1),
    )

    assert order.status is OrderStatus.CANCELLED
    assert order.grace_period_expires_at is None
    assert dispatcher.calls == [("cancelled", order_id, "ordered twice")]

    with pytest.raises(InvalidOrderState):
        _call(sessionmaker, grace_period.cancel_order, order_id, "again", now=T0)


def test_cancel_after_timer_lapsed_before_sweep(sessionmaker, dispatcher):
    order_id = seed_order(sessionmaker)

    order = _call(
        sessionmaker,
        grace_period.cancel_order,
        order_id,
        "changed my mind",
        customer_id="cust-1",
        dispatcher=dispatcher,
        now=T0 + timedelta(minutes=3, seconds=1),
    )

    assert order.status is OrderStatus.CANCELLED
    assert load_order(sessionmaker, order_id).status is OrderStatus.CANCELLED
    assert dispatcher.calls == [("cancelled", order_id, "changed my mind")]


def test_cancel_after_finalize_is_rejected(sessionmaker, settings):
    order_id = seed_order(sessionmaker)
    _call(
        sessionmaker,
        grace_period.finalize_expired,
        order_id,
        settings=settings,
        now=T0 + timedelta(minutes=3, seconds=1),
    )

    with pytest.raises(InvalidOrderState):
        _call(
            sessionmaker,
            grace_period.cancel_order,
            order_id,
            "too late",
            now=T0 + timedelta(minutes=4),
        )
