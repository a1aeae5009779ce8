from __future__ import annotations

"""Stub SMS provider that logs the message text."""

import logging

logger = logging.getLogger("notify")


def send(event, payload: dict, target):
    if not target:
        raise ValueError("sms target missing")
    logger.info("sms %s: %s", event.event, payload.get("text", ""), extra={"order_id": event.order_id})
