import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from buildledger.common.logging import get_logger

logger = get_logger("middleware")

LEDGER_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class AuditMiddleware(BaseHTTPMiddleware):
    """Times each request and tags it with a request id.

    Ledger writes are logged at INFO since each one carries a synchronous
    recompute; reads drop to DEBUG. A 503 is a recompute timeout and is logged
    with the retry hint the client receives.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        if response.status_code == 503:
            logger.warning(
                "[%s] %s %s 503 %.1fms (retry after %ss)",
                request_id,
                request.method,
                request.url.path,
                duration_ms,
                response.headers.get("Retry-After", "?"),
            )
        else:
            if response.status_code >= 500:
                log = logger.error
            elif request.method in LEDGER_WRITE_METHODS:
                log = logger.info
            else:
                log = logger.debug
            log(
                "[%s] %s %s %d %.1fms",
                request_id,
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
