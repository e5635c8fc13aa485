"""
RequestContext Middleware - Adds request tracking to all requests.

Stored on request.state for every request:
- request_id: Unique ID for request tracing
- ip_address: Client IP address
- user_agent: Client user agent string

The activity log reads these through `record_activity`, and request_id is
also bound to the structlog context so every log line of the request
carries it.
"""

import re
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from slotdesk.config import settings
from slotdesk.errors import unhandled_error_handler
from slotdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Fits activity_logs.request_id (VARCHAR(64))
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._:-]{1,64}")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Also adds X-Request-ID header to responses for client-side tracing.
    An incoming X-Request-ID is reused so traces can span the frontend,
    unless it is too long or carries unexpected characters.

    Unexpected errors are turned into the JSON 500 body here rather than in
    the outermost server error handler, so that response still passes back
    through CORS and carries the request id.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = self._incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        user_agent = request.headers.get("user-agent")
        request.state.user_agent = user_agent

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_error_handler(request, exc)

        response.headers["X-Request-ID"] = request_id

        return response

    def _incoming_request_id(self, request: Request) -> str | None:
        request_id = request.headers.get("x-request-id")
        if not request_id:
            return None
        if not _REQUEST_ID_PATTERN.fullmatch(request_id):
            logger.debug("Ignoring malformed X-Request-ID", length=len(request_id))
            return None
        return request_id

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Extract client IP address with proxy spoofing protection.

        X-Forwarded-For is only honoured when TRUST_X_FORWARDED_FOR is on and
        the direct peer is one of TRUSTED_PROXY_IPS.
        """
        direct_ip = request.client.host if request.client else None

        if not settings.TRUST_X_FORWARDED_FOR:
            return direct_ip

        if direct_ip and direct_ip in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # "client, proxy1, proxy2": first entry is the original client
                ip_address = forwarded_for.split(",")[0].strip()
                logger.debug(
                    "Using X-Forwarded-For from trusted proxy",
                    proxy_ip=direct_ip,
                    client_ip=ip_address,
                )
                return ip_address

        return direct_ip
