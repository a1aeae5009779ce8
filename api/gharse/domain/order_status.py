"""Order status enumeration and allowed transitions."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Enumerate the lifecycle states for an order."""

    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    PICKED_UP = "PICKED_UP"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# Transitions driven by this service. Everything after PENDING belongs to the
# kitchen fulfillment workflow.
TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING_CONFIRMATION: [
        OrderStatus.PENDING,
        OrderStatus.CANCELLED,
    ],
}

STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.PENDING_CONFIRMATION: "Order placed! You can still make changes.",
    OrderStatus.PENDING: "Order received! We're reviewing your order.",
    OrderStatus.CONFIRMED: "Order confirmed! Our chefs are preparing your food.",
    OrderStatus.PREPARING: "Your food is being cooked with love!",
    OrderStatus.READY: "Your order is ready! Driver is picking it up.",
    OrderStatus.OUT_FOR_DELIVERY: "Your order is on its way!",
    OrderStatus.DELIVERED: "Delivered! Enjoy your meal!",
    OrderStatus.PICKED_UP: "Picked up! Enjoy your meal!",
    OrderStatus.CANCELLED: "Order was cancelled.",
    OrderStatus.REFUNDED: "Your payment has been refunded.",
}


def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    """Return ``True`` if an order can move from ``src`` to ``dst``."""

    return dst in TRANSITIONS.get(src, [])


def status_message(status: OrderStatus) -> str:
    """Return the customer-facing text for ``status``."""

    return STATUS_MESSAGES.get(status, "Processing your order...")
