from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any

import httpx

from app.core import config
from app.core.tenant import forward_headers

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """The ERP backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


class BackendUnavailable(Exception):
    """The request never got an answer (DNS, TLS, refused connection, reset...)."""


def _problem_message(payload: Any) -> str | None:
    """Pull a human sentence out of the shapes the backend is known to return.

    - ``{"message": "..."}`` from the production handlers
    - ASP.NET problem details: ``{"title": ..., "detail": ..., "errors": {field: [msgs]}}``
    - a bare JSON string
    """
    if isinstance(payload, str):
        return payload.strip() or None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "Message", "detail", "error"):
        val = payload.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    errors = payload.get("errors")
    parts: list[str] = []
    if isinstance(errors, dict):
        for field, msgs in errors.items():
            if isinstance(msgs, list):
                parts.extend(str(m) for m in msgs)
            elif msgs:
                parts.append(f"{field}: {msgs}")
    elif isinstance(errors, list):
        parts.extend(str(m) for m in errors)
    title = payload.get("title")
    if parts:
        return "; ".join(parts) if not title else f"{title} {'; '.join(parts)}"
    if isinstance(title, str) and title.strip():
        return title.strip()
    return None


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json(parse_float=Decimal)
    except ValueError:
        return resp.text


class ErpClient:
    """Thin JSON wrapper over ``httpx.AsyncClient`` for the ERP REST API.

    Every call forwards the caller's tenant, credentials and request id.
    Non-2xx answers raise ``BackendError``; transport failures raise
    ``BackendUnavailable``. Nothing is retried here.
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def request(self, method: str, path: str, *, json: Any = None) -> Any:
        try:
            resp = await self._http.request(method, path, json=json, headers=forward_headers())
        except httpx.TransportError as e:
            logger.warning("ERP %s %s unreachable: %s", method, path, e)
            raise BackendUnavailable(str(e) or e.__class__.__name__) from e

        payload = _decode(resp)
        if 200 <= resp.status_code < 300:
            return payload

        message = _problem_message(payload) or f"HTTP {resp.status_code}"
        logger.warning("ERP %s %s -> %d: %s", method, path, resp.status_code, message)
        raise BackendError(resp.status_code, message, payload)

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, json: Any = None) -> Any:
        # The backend expects an empty JSON object, not an empty body.
        return await self.request("POST", path, json={} if json is None else json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def aclose(self) -> None:
        await self._http.aclose()


def build_erp_client(
    *,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float | None = None,
    verify: bool | None = None,
) -> ErpClient:
    http = httpx.AsyncClient(
        base_url=base_url or config.ERP_API_BASE_URL,
        transport=transport,
        timeout=timeout if timeout is not None else config.ERP_HTTP_TIMEOUT,
        verify=config.ERP_VERIFY_TLS if verify is None else verify,
    )
    return ErpClient(http)
