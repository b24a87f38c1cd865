from __future__ import annotations
from typing import Iterable

from app.core.decimals import to_wire
from app.core.http import ErpClient
from services.production.bom import FrozenBomLine
from services.production.models import CreateOrderCommand, OrderItemUpdate, ProductionOrder


def _returned_id(payload) -> int:
    # Handlers answer either a bare id or {"id": ...}.
    if isinstance(payload, dict):
        payload = payload.get("id", payload.get("orderId"))
    return int(payload)


class ProductionGateway:
    """HTTP surface of ``/production``; no state, no error translation."""

    def __init__(self, client: ErpClient):
        self._client = client

    async def create_bom(self, product_id: int, lines: Iterable[FrozenBomLine]) -> int:
        body = {
            "productId": product_id,
            "components": [{"componentId": ln.component_id, "quantity": to_wire(ln.quantity_per_unit)} for ln in lines],
        }
        return int(await self._client.post("/production/bom", body) or 0)

    async def create_order(self, command: CreateOrderCommand) -> int:
        return _returned_id(await self._client.post("/production/orders", command.to_payload()))

    async def list_orders(self) -> list[ProductionOrder]:
        rows = await self._client.get("/production/orders")
        return [ProductionOrder.model_validate(r) for r in (rows or [])]

    async def get_order(self, order_id: int) -> ProductionOrder:
        return ProductionOrder.model_validate(await self._client.get(f"/production/orders/{order_id}"))

    async def start_order(self, order_id: int) -> None:
        await self._client.post(f"/production/orders/{order_id}/start")

    async def complete_order(self, order_id: int) -> None:
        await self._client.post(f"/production/orders/{order_id}/complete")

    async def update_order_items(self, order_id: int, updates: Iterable[OrderItemUpdate]) -> None:
        body = [{"id": u.item_id, "quantity": to_wire(u.quantity)} for u in updates]
        await self._client.put(f"/production/orders/{order_id}/items", body)
