from __future__ import annotations

from fastapi import FastAPI

from app.core.http import ErpClient, build_erp_client
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware
from app.core.runtime import build_runtime

from services.inventory.api import router as inventory_router
from services.production.api import router as production_router


def create_app(erp_client: ErpClient | None = None, *, persist_bom: bool | None = None) -> FastAPI:
    """Build the console app.

    Pass ``erp_client`` to wire a prepared client (tests use a mock
    transport); otherwise one is built from the environment at startup and
    closed at shutdown.
    """
    app = FastAPI(title="Factory Production Console")
    app.add_middleware(RequestContextMiddleware)

    if erp_client is not None:
        app.state.runtime = build_runtime(erp_client, persist_bom=persist_bom)

    @app.on_event("startup")
    async def _startup():
        if erp_client is None:
            configure_logging()
            app.state.runtime = build_runtime(build_erp_client(), persist_bom=persist_bom)

    @app.on_event("shutdown")
    async def _shutdown():
        if erp_client is None:
            await app.state.runtime.client.aclose()

    app.include_router(inventory_router)
    app.include_router(production_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
