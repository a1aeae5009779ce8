# main.py

"""FastAPI application for the GharSe ordering service."""

from __future__ import annotations

import logging
import os

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings

from . import db
from .domain.errors import OrderError
from .middlewares import (
    IdempotencyMiddleware,
    LoggingMiddleware,
    PrometheusMiddleware,
    RequestIdMiddleware,
)
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .routes_metrics import router as metrics_router
from .routes_order_modify import router as order_modify_router
from .routes_orders import router as orders_router
from .routes_realtime import router as realtime_router
from .services.broadcast import Broadcaster
from .services.dispatch import SideEffectDispatcher
from .services.notifications import Notifier
from .utils.responses import err, ok, order_error

settings = get_settings()

configure_logging(getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("api")
init_sentry(env=os.getenv("ENV"))

app = FastAPI(title=f"{settings.restaurant_name} orders")

app.add_middleware(PrometheusMiddleware)
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(LoggingMiddleware)

app.state.redis = redis.from_url(settings.redis_url, decode_responses=True)
app.state.dispatcher = SideEffectDispatcher(
    Broadcaster(app.state.redis),
    Notifier(
        db.get_sessionmaker(),
        channels=settings.notification_channels,
        restaurant=settings.restaurant_name,
    ),
)

# /modify must be matched before /{order_id}
app.include_router(order_modify_router)
app.include_router(orders_router)
app.include_router(realtime_router)
app.include_router(metrics_router)


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    logger.warning(
        exc.message,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    return order_error(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or None
    return JSONResponse(
        err(
            "VALIDATION_ERROR",
            first.get("msg", "Invalid request"),
            {"field": field} if field else None,
        ),
        status_code=400,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        exc.detail,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    return JSONResponse(err(exc.status_code, exc.detail), status_code=exc.status_code)


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error",
        extra={"status": 500, "route": request.url.path},
    )
    capture_exception(exc)
    return JSONResponse(err("SERVER_ERROR", "Internal Server Error"), status_code=500)


@app.on_event("startup")
async def create_dev_schema() -> None:
    """Create tables for SQLite development databases; Postgres uses Alembic."""

    if settings.database_url.startswith("sqlite"):
        await db.init_models()


@app.on_event("shutdown")
async def shutdown() -> None:
    await app.state.dispatcher.drain()
    await app.state.redis.aclose()
    await db.dispose()


@app.get("/health")
async def health() -> dict:
    return ok({"status": "ok"})
