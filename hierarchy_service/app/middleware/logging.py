"""Request logging middleware."""

import time
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        organization_id = request.headers.get("X-Organization-Id", "none")

        response = await call_next(request)

        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms}ms) org={organization_id}",
            extra={"organization_id": organization_id},
        )
        return response
