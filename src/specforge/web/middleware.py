"""Request logging middleware for SpecForge.

Every request gets a correlation ID (taken from ``X-Correlation-ID`` or
generated) and, for ``/projects/{id}/...`` paths, a bound ``project_id``
so that controller and pipeline logs emitted while serving the request
can be joined back to it.

Health probes and the SSE stream endpoint are logged at debug level;
they are polled constantly and would drown the request log otherwise.

Example:
    >>> from fastapi import FastAPI
    >>> from specforge.web.middleware import RequestLoggingMiddleware
    >>>
    >>> app = FastAPI()
    >>> app.add_middleware(RequestLoggingMiddleware)
"""

from __future__ import annotations

import re
import time
import uuid
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from specforge.logging import (
    bind_project_context,
    clear_project_context,
    get_logger,
    set_correlation_id,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

_PROJECT_PATH = re.compile(r"^/projects/([0-9a-fA-F-]{36})(?:/|$)")
_QUIET_PREFIXES = ("/health", "/events/stream")


def project_id_from_path(path: str) -> str | None:
    """Extract the project UUID from a ``/projects/{id}`` path, if any."""
    match = _PROJECT_PATH.match(path)
    return match.group(1) if match else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs HTTP requests with timing and correlation IDs.

    For streaming responses the completion log marks when headers were
    sent, not when the stream ended.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        path = request.url.path
        project_id = project_id_from_path(path)
        if project_id is not None:
            bind_project_context(project_id)

        log = logger.debug if path.startswith(_QUIET_PREFIXES) else logger.info
        start_time = time.perf_counter()
        log(
            "request_started",
            method=request.method,
            path=path,
            query=str(request.url.query) if request.url.query else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                error=str(exc),
                exc_info=True,
            )
            raise
        else:
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            if project_id is not None:
                clear_project_context()
            set_correlation_id(None)
