#!/usr/bin/env python3
"""Background worker to deliver queued customer notifications.

Environment variables:
- OUTBOX_DB_URL: synchronous SQLAlchemy URL for the order database; defaults
  to ``database_url`` from the settings with the async driver removed.
- POLL_INTERVAL: Seconds between polling attempts (default: 5).
- ALERTS_EMAIL_PROVIDER / ALERTS_SMS_PROVIDER / ALERTS_WHATSAPP_PROVIDER:
  dotted module paths overriding the delivery providers.
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import random
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BASE_DIR))

from config import get_settings  # noqa: E402

from api.gharse.alerts.render import render_email, render_message  # noqa: E402
from api.gharse.models import NotificationDLQ, NotificationOutbox  # noqa: E402
from api.gharse.obs import capture_exception, init_sentry  # noqa: E402
from api.gharse.routes_metrics import (  # noqa: E402
    notifications_outbox_delivered_total,
    notifications_outbox_failed_total,
)

logger = logging.getLogger("notify")

PROVIDER_REGISTRY = {
    "email": os.getenv("ALERTS_EMAIL_PROVIDER", "api.gharse.providers.email_stub"),
    "sms": os.getenv("ALERTS_SMS_PROVIDER", "api.gharse.providers.sms_stub"),
    "whatsapp": os.getenv("ALERTS_WHATSAPP_PROVIDER", "api.gharse.providers.sms_stub"),
}

BACKOFF = [1, 5, 30, 120, 600]  # seconds: 1s, 5s, 30s, 2m, 10m


def _deliver(event: NotificationOutbox) -> None:
    """Render ``event`` for its channel and hand it to the provider."""
    payload = event.payload or {}
    template = payload.get("template")
    vars = payload.get("vars", {})
    if event.channel == "console":
        print(json.dumps(payload))
    elif event.channel == "email":
        if not template:
            raise ValueError("email payload missing template")
        subject, html = render_email(template, vars, payload.get("subject", ""))
        module = importlib.import_module(PROVIDER_REGISTRY["email"])
        module.send(event, {"subject": subject, "html": html}, event.target)
    elif event.channel in PROVIDER_REGISTRY:
        text = render_message(template, vars) if template else payload.get("text", "")
        module = importlib.import_module(PROVIDER_REGISTRY[event.channel])
        module.send(event, {"text": text}, event.target)
    else:
        raise ValueError(f"unsupported channel {event.channel}")


def _next_attempt(attempts: int, now: datetime) -> datetime:
    delay = BACKOFF[min(attempts - 1, len(BACKOFF) - 1)]
    jitter = random.uniform(0, delay * 0.1)
    return now + timedelta(seconds=delay + jitter)


def process_once(engine, max_attempts: int | None = None) -> int:
    """Attempt to deliver all due notifications once.

    Returns the number of notifications delivered.
    """
    if max_attempts is None:
        max_attempts = get_settings().outbox_max_attempts
    now = datetime.now(timezone.utc)
    delivered = 0
    with Session(engine) as session:
        events = session.scalars(
            select(NotificationOutbox)
            .where(NotificationOutbox.status == "queued")
            .where(
                (NotificationOutbox.next_attempt_at == None)  # noqa: E711
                | (NotificationOutbox.next_attempt_at <= now)
            )
            .order_by(NotificationOutbox.id)
        ).all()
        for event in events:
            try:
                _deliver(event)
            except Exception as exc:
                event.attempts += 1
                logger.warning(
                    "delivery failed (%s, attempt %d): %s",
                    event.channel,
                    event.attempts,
                    exc,
                    extra={"order_id": event.order_id},
                )
                if event.attempts >= max_attempts:
                    session.add(
                        NotificationDLQ(
                            original_id=event.id,
                            event=event.event,
                            channel=event.channel,
                            target=event.target,
                            payload=event.payload,
                            error=f"max attempts exceeded: {exc}",
                        )
                    )
                    notifications_outbox_failed_total.inc()
                    session.delete(event)
                else:
                    event.next_attempt_at = _next_attempt(event.attempts, now)
                continue
            event.status = "delivered"
            event.delivered_at = now
            notifications_outbox_delivered_total.inc()
            delivered += 1
        session.commit()
    return delivered


def _sync_url(url: str) -> str:
    parsed = make_url(url)
    backend = parsed.get_backend_name()
    driver = "postgresql+psycopg" if backend == "postgresql" else backend
    return parsed.set(drivername=driver).render_as_string(
        hide_password=False
    )


def main() -> None:
    init_sentry()
    db_url = os.getenv("OUTBOX_DB_URL") or _sync_url(get_settings().database_url)
    poll = int(os.getenv("POLL_INTERVAL", "5"))
    engine = create_engine(db_url)
    while True:
        try:
            process_once(engine)
        except Exception as exc:  # pragma: no cover - keep polling
            capture_exception(exc)
        time.sleep(poll)


if __name__ == "__main__":
    main()
