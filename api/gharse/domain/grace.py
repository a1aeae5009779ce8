"""Grace-period rules for orders awaiting customer confirmation.

A freshly placed order sits in ``PENDING_CONFIRMATION`` for a short window
during which the customer may still edit it. Every edit pushes the window
out, but never beyond a hard cap measured from the order's creation time.
Once finalized the order moves to ``PENDING`` and is visible to the kitchen.

All functions here are pure; callers pass ``now`` explicitly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from .errors import (
    EmptyOrder,
    GraceStillActive,
    InvalidOrderState,
    ModificationLimit,
    Unauthorized,
    WindowExpired,
)
from .order_status import OrderStatus, can_transition
from .orders import CandidateItem, OrderView


@dataclass(frozen=True)
class GracePolicy:
    """Timing knobs for the grace period."""

    initial: timedelta = timedelta(minutes=3)
    extension: timedelta = timedelta(minutes=2)
    max_window: timedelta = timedelta(minutes=5)
    max_modifications: int = 10
    finalize_buffer: timedelta = timedelta(seconds=5)

    @classmethod
    def from_settings(cls, settings) -> "GracePolicy":
        return cls(
            initial=timedelta(seconds=settings.grace_initial_secs),
            extension=timedelta(seconds=settings.grace_extension_secs),
            max_window=timedelta(seconds=settings.grace_max_secs),
            max_modifications=settings.max_modifications,
            finalize_buffer=timedelta(seconds=settings.finalize_buffer_secs),
        )


def ensure_modifiable(
    order: OrderView, now: datetime, customer_id: str | None = None
) -> None:
    """Raise unless ``order`` may be modified at ``now``.

    Checks run in a fixed order so that callers always see the most specific
    reason: status first, then the timer, then ownership.
    """

    if not can_transition(order.status, OrderStatus.PENDING):
        raise InvalidOrderState(order.status.value)
    expiry = order.grace_period_expires_at
    if expiry is not None and now > expiry:
        raise WindowExpired(expiry)
    if customer_id and order.customer_id and customer_id != order.customer_id:
        raise Unauthorized("modify")


def surviving_items(candidates: Iterable[CandidateItem]) -> List[CandidateItem]:
    """Drop removed lines; raise :class:`EmptyOrder` if nothing is left."""

    items = [c for c in candidates if c.quantity > 0]
    if not items:
        raise EmptyOrder()
    return items


def ensure_modification_budget(order: OrderView, policy: GracePolicy) -> None:
    if order.modification_count >= policy.max_modifications:
        raise ModificationLimit(policy.max_modifications)


def expiry_cap(order: OrderView, policy: GracePolicy) -> datetime:
    """Latest instant any grace period for ``order`` may reach.

    Anchored to the creation time rather than the latest edit so that a
    customer cannot keep an order parked by editing it repeatedly.
    """

    return order.created_at + policy.max_window


def next_expiry(order: OrderView, now: datetime, policy: GracePolicy) -> datetime:
    """Return the expiry to store after a non-finalizing modification."""

    cap = expiry_cap(order, policy)
    current = order.grace_period_expires_at
    if current is None or order.modification_count == 0:
        candidate = order.created_at + policy.initial
    else:
        candidate = now + policy.extension
    candidate = min(candidate, cap)
    # never shorten a window the customer has already been shown
    if current is not None and current > candidate:
        candidate = min(current, cap)
    return candidate


def time_remaining_ms(expiry: datetime | None, now: datetime) -> int:
    if expiry is None:
        return 0
    return max(0, int((expiry - now).total_seconds() * 1000))


def can_modify(order: OrderView, now: datetime) -> bool:
    if not can_transition(order.status, OrderStatus.PENDING):
        return False
    expiry = order.grace_period_expires_at
    return expiry is None or now <= expiry


def minutes_left(ms: int) -> int:
    return math.ceil(ms / 1000 / 60)


def ensure_finalizable_by_timeout(
    order: OrderView, now: datetime, policy: GracePolicy
) -> None:
    """Raise unless the timer for ``order`` has run out.

    Orders that never had an expiry are treated as expiring at the cap.
    """

    if not can_transition(order.status, OrderStatus.PENDING):
        raise InvalidOrderState(order.status.value, action="finalized")
    expiry = order.grace_period_expires_at or expiry_cap(order, policy)
    remaining = expiry - now
    if remaining > policy.finalize_buffer:
        raise GraceStillActive(math.ceil(remaining.total_seconds()))


def ensure_cancellable(order: OrderView, customer_id: str | None = None) -> None:
    """Raise unless ``order`` may still be cancelled by its customer.

    There is no timer check: an order whose window lapsed but which the sweep
    has not finalized yet can still be withdrawn.
    """

    if not can_transition(order.status, OrderStatus.CANCELLED):
        raise InvalidOrderState(order.status.value, action="cancelled")
    if customer_id and order.customer_id and customer_id != order.customer_id:
        raise Unauthorized("cancel")


__all__ = [
    "GracePolicy",
    "ensure_modifiable",
    "surviving_items",
    "ensure_modification_budget",
    "expiry_cap",
    "next_expiry",
    "time_remaining_ms",
    "can_modify",
    "minutes_left",
    "ensure_finalizable_by_timeout",
    "ensure_cancellable",
]
