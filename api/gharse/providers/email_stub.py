"""Stub email provider used for development and tests."""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("notify")


def send(event: Any, payload: Dict[str, Any], target: Optional[str]) -> None:
    logger.info(
        "email %s: %s",
        event.event,
        payload.get("subject", ""),
        extra={"order_id": event.order_id},
    )
