from __future__ import annotations
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.core.tenant import set_authorization, set_request_id, set_tenant_id

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str:
    rid = request.headers.get("X-Request-Id") or request.headers.get("X-Request-ID")
    if rid:
        return rid
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds tenant, caller credentials and a correlation id to the request.

    The values live in context variables so the ERP client can forward them
    on every outgoing call without threading them through the services.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = _get_request_id(request)
        set_tenant_id(request.headers.get("X-Tenant-Id") or request.headers.get("x-tenant-id"))
        set_authorization(request.headers.get("Authorization"))
        set_request_id(request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception("%s %s failed after %dms", request.method, request.url.path, duration_ms)
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-Id"] = request_id
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, "%s %s -> %d (%dms)", request.method, request.url.path, response.status_code, duration_ms)
        return response
