from __future__ import annotations
import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.tenant import set_tenant_id
from services.inventory.catalog import MaterialCatalog
from services.production.errors import (
    ActionInFlight,
    BackendUnreachable,
    BomNotDefined,
    IllegalTransition,
    InsufficientStock,
    InvalidOrderCommand,
    ItemUpdateRejected,
    OrderCreationRejected,
    OrderNotFound,
    ProductionCompletionFailed,
)
from services.production.gateway import ProductionGateway
from services.production.lifecycle import ActionStatus, LifecycleController
from services.production.models import (
    CreateOrderCommand,
    OrderItemInput,
    OrderItemUpdate,
    OrderStatus,
    Priority,
)

START = datetime(2026, 10, 19, tzinfo=timezone.utc)


@pytest.fixture
def controller(erp_client):
    return LifecycleController(ProductionGateway(erp_client), MaterialCatalog(erp_client))


def command(**overrides):
    kwargs = dict(
        product_id=10,
        quantity=Decimal("5"),
        start_date=START,
        items=(OrderItemInput(1, Decimal("10")), OrderItemInput(2, Decimal("15"))),
        priority=Priority.HIGH,
        notes="rush",
    )
    kwargs.update(overrides)
    return CreateOrderCommand(**kwargs)


def status_of(ctl, order_id):
    return next(o.status for o in ctl.orders if o.id == order_id)


@pytest.mark.asyncio
async def test_create_sends_totals_and_reloads(erp, controller):
    result = await controller.create(command())

    assert result.status is ActionStatus.COMMITTED
    assert result.message == f"Production order #{result.order_id} created."
    body = json.loads(erp.sent("POST", "/production/orders")[0].content)
    assert body == {
        "productId": 10,
        "quantity": 5,
        "startDate": "2026-10-19T00:00:00+00:00",
        "priority": "High",
        "notes": "rush",
        "items": [{"materialId": 1, "quantity": 10}, {"materialId": 2, "quantity": 15}],
    }
    assert status_of(controller, result.order_id) is OrderStatus.PLANNED
    assert erp.sent("GET", "/production/orders")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"items": ()},
        {"quantity": Decimal("0")},
        {"items": (OrderItemInput(1, Decimal("0")),)},
    ],
)
async def test_invalid_command_never_reaches_backend(erp, controller, overrides):
    result = await controller.create(command(**overrides))

    assert result.status is ActionStatus.FAILED
    assert isinstance(result.error, InvalidOrderCommand)
    assert not erp.sent("POST", "/production/orders")


@pytest.mark.asyncio
async def test_backend_rejection_is_shown_verbatim(controller):
    result = await controller.create(command(product_id=404))

    assert isinstance(result.error, OrderCreationRejected)
    assert result.message == "Product not found."


@pytest.mark.asyncio
async def test_start_with_short_stock_reports_material(erp, controller):
    erp.materials[1]["currentStockLevel"] = 5
    oid = erp.add_order(10, 5, [(1, 10), (2, 15)])
    await controller.list_orders()

    result = await controller.start(oid)

    assert result.status is ActionStatus.FAILED
    err = result.error
    assert isinstance(err, InsufficientStock)
    assert (err.material, err.material_id, err.required, err.available) == ("Steel Sheet", 1, Decimal("10"), Decimal("5"))
    assert "Steel Sheet" in result.message and "Purchase more" in result.message
    assert status_of(controller, oid) is OrderStatus.PLANNED
    assert erp.materials[1]["currentStockLevel"] == 5


@pytest.mark.asyncio
async def test_start_without_components_reports_missing_bom(erp, controller):
    oid = erp.add_order(10, 1, [])
    result = await controller.start(oid)

    assert isinstance(result.error, BomNotDefined)
    assert "Cabinet has no components defined" in result.message


@pytest.mark.asyncio
async def test_start_then_complete_moves_stock(erp, controller):
    oid = erp.add_order(10, 5, [(1, 10), (2, 15)])

    started = await controller.start(oid)
    assert started.ok
    assert started.message == "Production started. Materials deducted from stock."
    assert status_of(controller, oid) is OrderStatus.STARTED
    assert erp.materials[1]["currentStockLevel"] == 90
    assert erp.materials[2]["currentStockLevel"] == 485

    completed = await controller.complete(oid)
    assert completed.ok
    assert completed.message == "Production completed. Finished goods added to stock."
    order = next(o for o in controller.orders if o.id == oid)
    assert order.status is OrderStatus.COMPLETED
    assert order.end_date is not None
    assert order.progress_percentage == 100
    assert erp.materials[10]["currentStockLevel"] == 5


@pytest.mark.asyncio
async def test_completed_order_offers_no_transition(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)], status="Completed")
    await controller.list_orders()
    posts_before = len(erp.requests)

    for action in (controller.start, controller.complete):
        result = await action(oid)
        assert isinstance(result.error, IllegalTransition)

    assert not erp.sent("POST", f"/production/orders/{oid}/start")
    assert not erp.sent("POST", f"/production/orders/{oid}/complete")
    assert all(r.method == "GET" for r in erp.requests[posts_before:])


@pytest.mark.asyncio
async def test_complete_requires_started(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    result = await controller.complete(oid)

    assert isinstance(result.error, IllegalTransition)
    assert result.message == f"Order #{oid} is Planned; it cannot be completed."
    assert not erp.sent("POST", f"/production/orders/{oid}/complete")


@pytest.mark.asyncio
async def test_completion_failure_keeps_status(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)], status="Started")
    erp.fail[("POST", f"/production/orders/{oid}/complete")] = (500, {"message": "warehouse locked"})

    result = await controller.complete(oid)

    assert isinstance(result.error, ProductionCompletionFailed)
    assert result.message == "Production could not be completed: warehouse locked"
    assert status_of(controller, oid) is OrderStatus.STARTED


@pytest.mark.asyncio
async def test_unreachable_backend_keeps_last_snapshot(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    await controller.list_orders()

    erp.down = True
    result = await controller.start(oid)

    assert isinstance(result.error, BackendUnreachable)
    assert controller.last_error
    assert status_of(controller, oid) is OrderStatus.PLANNED
    assert not controller.is_pending(oid)


@pytest.mark.asyncio
async def test_second_start_while_first_in_flight_is_refused(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    await controller.list_orders()
    erp.gate = asyncio.Event()

    first = asyncio.create_task(controller.start(oid))
    while not controller.is_pending(oid):
        await asyncio.sleep(0)

    second = await controller.start(oid)
    assert isinstance(second.error, ActionInFlight)

    erp.gate.set()
    assert (await first).ok
    assert len(erp.sent("POST", f"/production/orders/{oid}/start")) == 1
    assert not controller.is_pending(oid)


@pytest.mark.asyncio
async def test_unknown_order(controller):
    result = await controller.start(12345)
    assert isinstance(result.error, OrderNotFound)

    with pytest.raises(OrderNotFound):
        await controller.get_order(12345)


@pytest.mark.asyncio
async def test_order_detail_shows_stock_per_item(erp, controller):
    erp.materials[1]["currentStockLevel"] = 5
    oid = erp.add_order(10, 5, [(1, 10), (2, 15)])

    detail = await controller.order_detail(oid)

    assert detail.order.product_name == "Cabinet"
    assert [(ln.material_name, ln.is_sufficient) for ln in detail.lines] == [("Steel Sheet", False), ("Bolt", True)]
    assert detail.has_shortage


@pytest.mark.asyncio
async def test_update_items_on_planned_order(erp, controller):
    oid = erp.add_order(10, 5, [(1, 10)])
    item_id = erp.orders[oid]["items"][0]["id"]

    result = await controller.update_items(oid, [OrderItemUpdate(item_id, Decimal("12"))])

    assert result.ok
    assert json.loads(erp.sent("PUT", f"/production/orders/{oid}/items")[0].content) == [{"id": item_id, "quantity": 12}]
    assert erp.orders[oid]["items"][0]["quantity"] == 12


@pytest.mark.asyncio
async def test_update_items_refused_once_started(erp, controller):
    oid = erp.add_order(10, 5, [(1, 10)], status="Started")
    item_id = erp.orders[oid]["items"][0]["id"]

    result = await controller.update_items(oid, [OrderItemUpdate(item_id, Decimal("12"))])

    assert isinstance(result.error, IllegalTransition)
    assert not erp.sent("PUT", f"/production/orders/{oid}/items")


@pytest.mark.asyncio
async def test_update_items_rejects_non_positive_quantity(erp, controller):
    oid = erp.add_order(10, 5, [(1, 10)])
    result = await controller.update_items(oid, [OrderItemUpdate(1, Decimal("0"))])

    assert isinstance(result.error, InvalidOrderCommand)
    assert not erp.sent("PUT", f"/production/orders/{oid}/items")


@pytest.mark.asyncio
async def test_update_items_backend_rejection(erp, controller):
    oid = erp.add_order(10, 5, [(1, 10)])
    erp.fail[("PUT", f"/production/orders/{oid}/items")] = (400, {"message": "Item does not belong to order."})

    result = await controller.update_items(oid, [OrderItemUpdate(9, Decimal("1"))])

    assert isinstance(result.error, ItemUpdateRejected)
    assert "Item does not belong to order." in result.message


@pytest.mark.asyncio
async def test_transition_judged_on_fresh_status_not_cached_list(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    await controller.list_orders()
    # started elsewhere after our last reload
    erp.orders[oid]["status"] = "Started"

    result = await controller.complete(oid)

    assert result.ok
    assert len(erp.sent("POST", f"/production/orders/{oid}/complete")) == 1
    assert status_of(controller, oid) is OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_refused_transition_still_reloads_list(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    await controller.list_orders()
    erp.orders[oid]["status"] = "Completed"

    result = await controller.start(oid)

    assert isinstance(result.error, IllegalTransition)
    assert result.message == f"Order #{oid} is Completed; it cannot be started."
    assert not erp.sent("POST", f"/production/orders/{oid}/start")
    assert status_of(controller, oid) is OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_in_flight_guard_is_per_tenant(erp, controller):
    oid = erp.add_order(10, 1, [(1, 1)])
    erp.gate = asyncio.Event()

    async def start_as(tenant):
        set_tenant_id(tenant)
        return await controller.start(oid)

    first = asyncio.create_task(start_as("acme"))
    while not erp.sent("POST", f"/production/orders/{oid}/start"):
        await asyncio.sleep(0)

    other = asyncio.create_task(start_as("globex"))
    while len(erp.sent("POST", f"/production/orders/{oid}/start")) < 2:
        await asyncio.sleep(0)

    erp.gate.set()
    results = await asyncio.gather(first, other)
    assert not any(isinstance(r.error, ActionInFlight) for r in results)
    tenants = [r.headers["X-Tenant-Id"] for r in erp.sent("POST", f"/production/orders/{oid}/start")]
    assert sorted(tenants) == ["acme", "globex"]
