"""Database models for the ordering service.

These models describe the relational schema behind the order store. They are
kept isolated from any application wiring so that they can be used in tests or
migrations independently."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

from .domain.order_status import OrderStatus

Base = declarative_base()


class MenuItem(Base):
    """Catalog entries referenced by order items."""

    __tablename__ = "menu_items"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    inventory_enabled = Column(Boolean, nullable=False, default=False)
    inventory = Column(Integer, nullable=True)


class Order(Base):
    """Customer purchases, modifiable while in the grace period."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status_grace", "status", "grace_period_expires_at"),
    )

    id = Column(String, primary_key=True)
    order_number = Column(String, unique=True, nullable=False)
    customer_id = Column(String, nullable=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    delivery_address = Column(String, nullable=False, default="")
    delivery_city = Column(String, nullable=False, default="")
    delivery_zip = Column(String, nullable=False, default="")
    delivery_notes = Column(Text, nullable=False, default="")
    status = Column(Enum(OrderStatus), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    grace_period_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_modified_at = Column(DateTime(timezone=True), nullable=True)
    modification_count = Column(Integer, nullable=False, default=0)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String, nullable=False, default="cash-on-delivery")
    payment_status = Column(String, nullable=False, default="PENDING")
    estimated_ready_at = Column(DateTime(timezone=True), nullable=True)
    special_instructions = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    """Line items belonging to an order."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(
        String,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    special_instructions = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")


class NotificationOutbox(Base):
    """Queued notifications awaiting delivery."""

    __tablename__ = "notifications_outbox"
    __table_args__ = (
        Index("ix_notifications_outbox_status_next", "status", "next_attempt_at"),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(String, nullable=True)
    event = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    channel = Column(String, nullable=False)
    target = Column(String, nullable=False)
    status = Column(String, nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    delivered_at = Column(DateTime(timezone=True), nullable=True)


class NotificationDLQ(Base):
    """Dead-letter queue for permanently failed notifications."""

    __tablename__ = "notifications_dlq"

    id = Column(Integer, primary_key=True)
    original_id = Column(Integer, nullable=False)
    event = Column(String, nullable=False)
    channel = Column(String, nullable=False)
    target = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    error = Column(String, nullable=False)
    failed_at = Column(DateTime(timezone=True), server_default=func.now())
