"""HTTP interface for SpecForge.

FastAPI application factory, request logging middleware, error handlers
and the SSE broadcaster used to mirror pipeline progress to clients.
"""

from __future__ import annotations

from specforge.web.app import create_app
from specforge.web.errors import register_error_handlers, status_for
from specforge.web.middleware import RequestLoggingMiddleware
from specforge.web.routes.events import (
    EventBroadcaster,
    SSEEvent,
    SSEEventType,
    get_broadcaster,
)

__all__ = [
    # Application
    "create_app",
    "RequestLoggingMiddleware",
    "register_error_handlers",
    "status_for",
    # SSE Events
    "EventBroadcaster",
    "SSEEvent",
    "SSEEventType",
    "get_broadcaster",
]
