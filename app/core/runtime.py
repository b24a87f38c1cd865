from __future__ import annotations
from dataclasses import dataclass

from fastapi import Request

from app.core import config
from app.core.http import ErpClient
from services.inventory.catalog import MaterialCatalog
from services.production.gateway import ProductionGateway
from services.production.lifecycle import LifecycleController
from services.production.sessions import WizardSessions
from services.production.wizard import ProductionWizard


@dataclass
class ConsoleRuntime:
    """Process-wide collaborators shared by every request.

    One lifecycle controller per process, so its in-flight guard covers
    concurrent requests for the same order.
    """

    client: ErpClient
    catalog: MaterialCatalog
    gateway: ProductionGateway
    lifecycle: LifecycleController
    sessions: WizardSessions
    persist_bom: bool = False

    def new_wizard(self) -> ProductionWizard:
        return ProductionWizard(self.catalog, self.lifecycle, gateway=self.gateway, persist_bom=self.persist_bom)


def build_runtime(client: ErpClient, *, persist_bom: bool | None = None) -> ConsoleRuntime:
    catalog = MaterialCatalog(client)
    gateway = ProductionGateway(client)
    return ConsoleRuntime(
        client=client,
        catalog=catalog,
        gateway=gateway,
        lifecycle=LifecycleController(gateway, catalog),
        sessions=WizardSessions(),
        persist_bom=config.PERSIST_BOM_ON_SUBMIT if persist_bom is None else persist_bom,
    )


def get_runtime(request: Request) -> ConsoleRuntime:
    return request.app.state.runtime
