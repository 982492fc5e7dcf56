"""Request context middleware.

Binds a RequestContext for the duration of each request so every log
record emitted while handling it carries the request id and caller.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from cardsearch_core.observability import (
    RequestContext,
    bind_request_context,
    reset_request_context,
)

REQUEST_ID_HEADER = "X-Request-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach request id, caller, path and method to log records."""

    async def dispatch(self, request: Request, call_next):
        """Process the request."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        context = RequestContext(
            request_id=request_id,
            owner_id=request.headers.get("X-User-Id"),
            path=request.url.path,
            method=request.method,
        )

        token = bind_request_context(context)
        try:
            response = await call_next(request)
        finally:
            reset_request_context(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
