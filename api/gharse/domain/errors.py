"""Domain errors raised by the ordering workflows.

Each error carries a stable ``code`` and an HTTP ``status_code`` so that the
routes can render the standard error envelope without inspecting messages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class OrderError(ValueError):
    """Base class for order workflow failures."""

    code = "ORDER_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.hint = hint


class OrderNotFound(OrderError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: str) -> None:
        super().__init__("Order not found", details={"order_id": order_id})


class InvalidOrderState(OrderError):
    """Raised when the order has left ``PENDING_CONFIRMATION``."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, current_status: str, *, action: str = "modified") -> None:
        super().__init__(
            f"Order can no longer be {action}. Current status: {current_status}. "
            "Orders can only be changed while PENDING_CONFIRMATION.",
            details={"current_status": current_status},
        )
        self.current_status = current_status


class WindowExpired(OrderError):
    code = "WINDOW_EXPIRED"
    status_code = 410

    def __init__(self, expired_at: datetime) -> None:
        super().__init__(
            "Modification window has expired.",
            details={"expired_at": expired_at.isoformat()},
        )


class Unauthorized(OrderError):
    code = "UNAUTHORIZED"
    status_code = 403

    def __init__(self, action: str = "modify") -> None:
        super().__init__(f"Unauthorized to {action} this order")


class EmptyOrder(OrderError):
    """Raised when a modification would leave the order without items."""

    code = "SHOULD_CANCEL"
    status_code = 422

    def __init__(self) -> None:
        super().__init__(
            "Order must have at least one item. To remove all items, "
            "please cancel the order.",
            details={"should_cancel": True},
        )


class ModificationLimit(OrderError):
    code = "MODIFICATION_LIMIT"
    status_code = 429

    def __init__(self, max_modifications: int) -> None:
        super().__init__(
            "Order has reached the maximum number of modifications.",
            details={"max_modifications": max_modifications},
            hint="confirm the order or cancel it",
        )


class GraceStillActive(OrderError):
    code = "GRACE_ACTIVE"
    status_code = 409

    def __init__(self, time_remaining_secs: int) -> None:
        super().__init__(
            "Grace period has not expired yet",
            details={"time_remaining_secs": time_remaining_secs},
        )


class ValidationFailed(OrderError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class InsufficientInventory(OrderError):
    code = "INSUFFICIENT_INVENTORY"
    status_code = 409

    def __init__(self, item_name: str, available: int) -> None:
        super().__init__(
            f"Insufficient inventory for item {item_name}. Only {available} available.",
            details={"field": "items", "available": available},
        )


class PersistenceFailure(OrderError):
    """Store failure; the caller should retry the whole operation."""

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str = "Failed to save order. Please try again.") -> None:
        super().__init__(message, details={"retryable": True})


__all__ = [
    "OrderError",
    "OrderNotFound",
    "InvalidOrderState",
    "WindowExpired",
    "Unauthorized",
    "EmptyOrder",
    "ModificationLimit",
    "GraceStillActive",
    "ValidationFailed",
    "InsufficientInventory",
    "PersistenceFailure",
]
