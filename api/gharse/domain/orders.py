"""Typed projections of orders passed between the store and the workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from .order_status import OrderStatus


@dataclass(frozen=True)
class CandidateItem:
    """Proposed line for a modification; ``quantity == 0`` removes the item."""

    menu_item_id: str
    quantity: int
    price: Decimal
    special_instructions: str | None = None


@dataclass(frozen=True)
class OrderItemView:
    id: int | None
    menu_item_id: str
    quantity: int
    price: Decimal
    subtotal: Decimal
    special_instructions: str | None = None


@dataclass(frozen=True)
class OrderView:
    """Snapshot of an order and its items as stored."""

    id: str
    order_number: str
    status: OrderStatus
    created_at: datetime
    grace_period_expires_at: datetime | None
    last_modified_at: datetime | None
    modification_count: int
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    customer_id: str | None = None
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    estimated_ready_at: datetime | None = None
    items: tuple[OrderItemView, ...] = field(default_factory=tuple)

    def summary(self) -> dict[str, Any]:
        """Return the compact payload used by kitchen broadcasts."""

        return {
            "order_id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "total": float(self.total),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "items": [
                {"menu_item_id": i.menu_item_id, "quantity": i.quantity}
                for i in self.items
            ],
        }

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON projection returned to clients."""

        def _ts(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status.value,
            "customer": {
                "id": self.customer_id,
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
            },
            "items": [
                {
                    "id": i.id,
                    "menu_item_id": i.menu_item_id,
                    "quantity": i.quantity,
                    "price": float(i.price),
                    "subtotal": float(i.subtotal),
                    "special_instructions": i.special_instructions or "",
                }
                for i in self.items
            ],
            "pricing": {
                "subtotal": float(self.subtotal),
                "tax": float(self.tax),
                "delivery_fee": float(self.delivery_fee),
                "discount": float(self.discount),
                "total": float(self.total),
            },
            "created_at": _ts(self.created_at),
            "grace_period_expires_at": _ts(self.grace_period_expires_at),
            "last_modified_at": _ts(self.last_modified_at),
            "estimated_ready_at": _ts(self.estimated_ready_at),
            "modification_count": self.modification_count,
        }
