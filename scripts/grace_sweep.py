#!/usr/bin/env python3
"""Finalize orders whose grace period ran out without a client call.

Customers normally trigger finalization from the order page when the
countdown hits zero. Orders whose page was closed are picked up here and sent
to the kitchen through the same timeout path.

Environment variables:
- DATABASE_URL / REDIS_URL: override the values from ``config.json``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BASE_DIR))

from config import Settings, get_settings  # noqa: E402

from api.gharse import db  # noqa: E402
from api.gharse.domain.errors import OrderError  # noqa: E402
from api.gharse.domain.grace import GracePolicy  # noqa: E402
from api.gharse.obs import capture_exception, init_sentry  # noqa: E402
from api.gharse.obs.logging import configure_logging  # noqa: E402
from api.gharse.repos_sqlalchemy import orders_repo_sql  # noqa: E402
from api.gharse.services import grace_period  # noqa: E402
from api.gharse.services.broadcast import Broadcaster  # noqa: E402
from api.gharse.services.dispatch import SideEffectDispatcher  # noqa: E402
from api.gharse.services.notifications import Notifier  # noqa: E402

logger = logging.getLogger("orders")


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def sweep_once(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    dispatcher: SideEffectDispatcher | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Finalize every expired ``PENDING_CONFIRMATION`` order.

    Returns the ids of the orders moved to ``PENDING`` by this pass.
    """

    settings = settings or get_settings()
    now = now or _now()
    policy = GracePolicy.from_settings(settings)
    async with sessionmaker() as session:
        order_ids = await orders_repo_sql.list_expired_pending(
            session, now, policy.max_window
        )

    finalized: list[str] = []
    for order_id in order_ids:
        async with sessionmaker() as session:
            try:
                result = await grace_period.finalize_expired(
                    session,
                    order_id,
                    dispatcher=dispatcher,
                    settings=settings,
                    now=now,
                    trigger="sweep",
                )
            except OrderError as exc:
                # raced with a customer action
                logger.info("skipped: %s", exc.code, extra={"order_id": order_id})
                continue
        if not result.already_finalized:
            finalized.append(order_id)
    if finalized:
        logger.info("sweep finalized %d order(s)", len(finalized))
    return finalized


async def run(once: bool = False) -> None:
    settings = get_settings()
    sessionmaker = db.get_sessionmaker()
    client = redis.from_url(settings.redis_url, decode_responses=True)
    dispatcher = SideEffectDispatcher(
        Broadcaster(client),
        Notifier(
            sessionmaker,
            channels=settings.notification_channels,
            restaurant=settings.restaurant_name,
        ),
    )
    try:
        while True:
            try:
                await sweep_once(sessionmaker, dispatcher=dispatcher, settings=settings)
            except Exception as exc:  # pragma: no cover - keep sweeping
                capture_exception(exc)
            await dispatcher.drain()
            if once:
                break
            await asyncio.sleep(settings.sweep_interval_secs)
    finally:
        await client.aclose()
        await db.dispose()


def _cli() -> None:
    parser = argparse.ArgumentParser(description="Finalize expired grace periods")
    parser.add_argument("--once", action="store_true", help="Run a single pass")
    args = parser.parse_args()
    configure_logging()
    init_sentry()
    asyncio.run(run(once=args.once))


if __name__ == "__main__":
    _cli()
