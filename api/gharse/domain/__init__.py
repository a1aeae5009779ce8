"""Domain models and helpers."""

from .order_status import OrderStatus, TRANSITIONS, can_transition, status_message
from .orders import CandidateItem, OrderItemView, OrderView

__all__ = [
    "OrderStatus",
    "TRANSITIONS",
    "can_transition",
    "status_message",
    "CandidateItem",
    "OrderItemView",
    "OrderView",
]
