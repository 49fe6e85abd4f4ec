"""Request logging middleware."""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Control character pattern for log injection prevention.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, tabs, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs one REQUEST_START and one REQUEST_END line per request."""

    EXEMPT_PATHS = frozenset({"/", "/health"})

    def __init__(self, app: Callable, service: str = "orchestrator") -> None:
        super().__init__(app)
        self.service = service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = _sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        safe_path = _sanitize_log_value(request.url.path)
        start_time = time.time()

        logger.info(
            "REQUEST_START service=%s request_id=%s method=%s path=%s",
            self.service,
            request_id,
            request.method,
            safe_path,
        )

        error_message: str | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            error_message = _sanitize_log_value(str(e))
            raise
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            if error_message:
                logger.error(
                    "REQUEST_END service=%s request_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    self.service,
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END service=%s request_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d",
                    self.service,
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
