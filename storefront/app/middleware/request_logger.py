# storefront/app/middleware/request_logger.py
import logging
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("request")


def _client_ip_from_request(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-Id") or uuid.uuid4().hex


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    Structured request logger.

    Adds:
    - request timing
    - client_ip
    - request_id propagation (reads X-Request-Id, generates one otherwise)
    """

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        request_id = _request_id(request)
        request.state.request_id = request_id

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": _client_ip_from_request(request),
        }

        try:
            response: Response = await call_next(request)
        except Exception as exc:
            duration_ms = int((time.time() - start) * 1000)
            logger.exception(
                "request_error",
                extra={**context, "status_code": 500, "duration_ms": duration_ms, "error": str(exc)[:1000]},
            )
            raise

        duration_ms = int((time.time() - start) * 1000)
        status_code: Optional[int] = getattr(response, "status_code", 0)
        response.headers.setdefault("X-Request-Id", request_id)

        logger.info(
            "%s %s %s %dms req_id=%s",
            request.method, context["path"], status_code, duration_ms, request_id,
            extra={**context, "status_code": status_code, "duration_ms": duration_ms},
        )
        return response
