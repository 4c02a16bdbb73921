import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger("ubuntu.request")


def _log_fields(request: Request, response: Response, req_id: str, duration_ms: int) -> dict:
    fields = {
        "request_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
    }
    # Set by the auth flow, already masked
    phone = getattr(request.state, "phone", None)
    if phone:
        fields["phone"] = phone
    return fields


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Echo or mint ``X-Request-ID`` and write one JSON log line per request."""

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = req_id
        start = time.perf_counter()
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(json.dumps(_log_fields(request, response, req_id, duration_ms)))
        return response
