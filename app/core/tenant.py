from __future__ import annotations
import contextvars

_tenant: contextvars.ContextVar[str] = contextvars.ContextVar("tenant_id", default="default")
_auth: contextvars.ContextVar[str | None] = contextvars.ContextVar("authorization", default=None)
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)

def set_tenant_id(tenant_id: str | None) -> None:
    _tenant.set(tenant_id or "default")

def get_tenant_id() -> str:
    return _tenant.get()

def set_authorization(value: str | None) -> None:
    """Raw Authorization header of the console request, forwarded to the ERP backend."""
    _auth.set(value or None)

def get_authorization() -> str | None:
    return _auth.get()

def set_request_id(request_id: str | None) -> None:
    _request_id.set(request_id)

def get_request_id() -> str | None:
    return _request_id.get()

def forward_headers() -> dict[str, str]:
    headers = {"X-Tenant-Id": get_tenant_id()}
    auth = get_authorization()
    if auth:
        headers["Authorization"] = auth
    rid = get_request_id()
    if rid:
        headers["X-Request-Id"] = rid
    return headers
