# schemas.py

"""Pydantic models for order API payloads.

Clients may send either ``snake_case`` or ``camelCase`` keys.
"""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomerIn(_Payload):
    """Customer contact details captured at checkout."""

    id: Optional[str] = None
    name: str = Field(min_length=2, max_length=100)
    email: str
    phone: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        digits = re.sub(r"\D", "", value)
        if len(digits) < 10:
            raise ValueError("Phone number must have at least 10 digits")
        return value.strip()


class AddressIn(_Payload):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    apartment: Optional[str] = None
    delivery_instructions: Optional[str] = None


class OrderLineIn(_Payload):
    """Single line of a new order; the price comes from the menu."""

    menu_item_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    special_instructions: Optional[str] = None


class CreateOrderPayload(_Payload):
    customer: CustomerIn
    items: List[OrderLineIn] = Field(min_length=1)
    order_type: Literal["delivery", "pickup"] = "delivery"
    delivery_address: Optional[AddressIn] = None
    payment_method: Literal["cash-on-delivery", "card", "upi"] = "cash-on-delivery"
    special_instructions: Optional[str] = None
    discount: float = Field(default=0, ge=0)


class ModifyItemIn(_Payload):
    """Proposed line for a modification; ``quantity`` 0 removes the line."""

    menu_item_id: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    price: float = Field(gt=0)
    special_instructions: Optional[str] = None


class ModifyOrderPayload(_Payload):
    order_id: str = Field(min_length=1)
    items: List[ModifyItemIn] = Field(min_length=1)
    customer_id: Optional[str] = None
    finalize: bool = False


class FinalizePayload(_Payload):
    order_id: str = Field(min_length=1)
    customer_id: Optional[str] = None


class CancelPayload(_Payload):
    order_id: str = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=500)
    customer_id: Optional[str] = None
