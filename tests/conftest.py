"""Shared fixtures: an in-memory stand-in for the ERP backend.

``FakeErp`` answers the same routes as the real service, applies stock
deduction on start and stock addition on complete, and records every request
so tests can assert on what was (or was not) sent.
"""
from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime, timezone

import httpx
import pytest

from app.core.http import build_erp_client

BASE_URL = "https://erp.test/api/v1"


def material(id, name, type_, stock, *, code=None, uom="KG", minimum=0, price=1):
    return {
        "id": id,
        "materialCode": code or f"M-{id:03d}",
        "materialName": name,
        "materialType": type_,
        "unitOfMeasure": uom,
        "unitPrice": price,
        "currentStockLevel": stock,
        "minimumStockLevel": minimum,
    }


class FakeErp:
    def __init__(self):
        self.materials: dict[int, dict] = {}
        self.orders: dict[int, dict] = {}
        self.boms: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.fail: dict[tuple[str, str], tuple[int, object]] = {}
        self.down = False
        self.gate: asyncio.Event | None = None
        # POSTs whose path ends with this wait for ``gate``
        self.gate_on = "/start"
        self._next_order = 100
        self._next_item = 1000

    # ---- seeding ----
    def add_material(self, *args, **kwargs) -> dict:
        row = material(*args, **kwargs)
        self.materials[row["id"]] = row
        return row

    def add_order(self, product_id, quantity, items, status="Planned", **extra) -> int:
        oid = self._next_order
        self._next_order += 1
        self.orders[oid] = {
            "id": oid,
            "orderNumber": f"PO-{oid}",
            "productId": product_id,
            "productName": self.materials.get(product_id, {}).get("materialName", "Unknown"),
            "quantity": quantity,
            "status": status,
            "startDate": "2026-10-19T00:00:00Z",
            "endDate": None,
            "priority": extra.get("priority", "Medium"),
            "notes": extra.get("notes", ""),
            "createdDate": "2026-10-18T09:00:00Z",
            "items": [self._item(mid, qty) for mid, qty in items],
        }
        return oid

    def _item(self, material_id, quantity) -> dict:
        self._next_item += 1
        return {
            "id": self._next_item,
            "materialId": material_id,
            "materialName": self.materials.get(material_id, {}).get("materialName"),
            "quantity": quantity,
        }

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == "/api/v1" + path]

    # ---- transport ----
    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path.removeprefix("/api/v1")
        if (request.method, path) in self.fail:
            status, payload = self.fail[(request.method, path)]
            return httpx.Response(status, json=payload)
        if self.gate is not None and request.method == "POST" and path.endswith(self.gate_on):
            await self.gate.wait()
        body = json.loads(request.content) if request.content else None
        return self._route(request.method, path, body)

    def _route(self, method: str, path: str, body) -> httpx.Response:
        if method == "GET" and path == "/inventory/materials":
            return httpx.Response(200, json=list(self.materials.values()))
        if method == "POST" and path == "/production/bom":
            self.boms.append(body)
            return httpx.Response(200, json=len(body["components"]))
        if method == "POST" and path == "/production/orders":
            return self._create(body)
        if method == "GET" and path == "/production/orders":
            return httpx.Response(200, json=[{k: v for k, v in o.items() if k != "items"} for o in self.orders.values()])

        m = re.fullmatch(r"/production/orders/(\d+)(?:/(start|complete|items))?", path)
        if not m:
            return httpx.Response(404, json={"message": f"no route {method} {path}"})
        order = self.orders.get(int(m.group(1)))
        if order is None:
            return httpx.Response(404, json={"message": "Production order not found."})
        action = m.group(2)
        if method == "GET" and action is None:
            return httpx.Response(200, json=order)
        if method == "POST" and action == "start":
            return self._start(order)
        if method == "POST" and action == "complete":
            return self._complete(order)
        if method == "PUT" and action == "items":
            for upd in body:
                for it in order["items"]:
                    if it["id"] == upd["id"]:
                        it["quantity"] = upd["quantity"]
            return httpx.Response(204)
        return httpx.Response(405)

    def _create(self, body) -> httpx.Response:
        if body["productId"] not in self.materials:
            return httpx.Response(400, json={"message": "Product not found."})
        if not body.get("items"):
            return httpx.Response(
                400,
                json={"title": "One or more validation errors occurred.", "errors": {"Items": ["At least one item is required."]}},
            )
        oid = self.add_order(
            body["productId"],
            body["quantity"],
            [(i["materialId"], i["quantity"]) for i in body["items"]],
            priority=body.get("priority"),
            notes=body.get("notes"),
        )
        self.orders[oid]["startDate"] = body["startDate"]
        return httpx.Response(200, json=oid)

    def _start(self, order) -> httpx.Response:
        if order["status"] != "Planned":
            return httpx.Response(400, json={"message": f"Order is {order['status']}, not Planned."})
        if not order["items"]:
            return httpx.Response(400, json={"code": "BomNotDefined", "message": f"No BOM defined for {order['productName']}."})
        for it in order["items"]:
            mat = self.materials.get(it["materialId"])
            available = mat["currentStockLevel"] if mat else 0
            if available < it["quantity"]:
                name = mat["materialName"] if mat else "Unknown"
                return httpx.Response(400, json={
                    "code": "InsufficientStock",
                    "materialId": it["materialId"],
                    "materialName": name,
                    "required": it["quantity"],
                    "available": available,
                    "message": f"Insufficient stock for {name}. Required: {it['quantity']}, Available: {available}",
                })
        for it in order["items"]:
            self.materials[it["materialId"]]["currentStockLevel"] -= it["quantity"]
        order["status"] = "Started"
        return httpx.Response(200)

    def _complete(self, order) -> httpx.Response:
        if order["status"] != "Started":
            return httpx.Response(400, json={"message": "Only started orders can be completed."})
        self.materials[order["productId"]]["currentStockLevel"] += order["quantity"]
        order["status"] = "Completed"
        order["endDate"] = datetime.now(timezone.utc).isoformat()
        return httpx.Response(200)


@pytest.fixture
def erp() -> FakeErp:
    fake = FakeErp()
    fake.add_material(1, "Steel Sheet", "RawMaterial", 100)
    fake.add_material(2, "Bolt", 0, 500, uom="PCS")
    fake.add_material(3, "Paint", "0", 20, uom="L", minimum=25)
    fake.add_material(10, "Cabinet", "FinishedGood", 0, uom="PCS")
    fake.add_material(11, "Desk", 2, 3, uom="PCS")
    fake.add_material(99, "Installation", "Service", 0)
    return fake


@pytest.fixture
def erp_client(erp):
    return build_erp_client(base_url=BASE_URL, transport=httpx.MockTransport(erp.handler), verify=False)
