"""Request-scoped dependency helpers."""

from __future__ import annotations

from fastapi import Request

from .services.dispatch import SideEffectDispatcher


def get_dispatcher(request: Request) -> SideEffectDispatcher:
    """Return the side-effect dispatcher attached to the application."""

    return request.app.state.dispatcher
