from __future__ import annotations
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.decimals import fmt_qty
from app.core.runtime import ConsoleRuntime, get_runtime
from services.inventory.api import material_out
from services.production.dashboard import compute_metrics
from services.production.errors import (
    BackendUnreachable,
    IllegalWizardTransition,
    IncompleteBom,
    InsufficientStock,
    InvalidOrderCommand,
    OrderCreationRejected,
    OrderNotFound,
    ProductionError,
    ShortageNotConfirmed,
)
from services.production.lifecycle import ActionResult
from services.production.models import OrderItemUpdate, Priority, ProductionOrder
from services.production.requirements import StockRequirementLine
from services.production.wizard import ProductionWizard

router = APIRouter(prefix="/production", tags=["production"])


# ---- Schemas ----
class ProductIn(BaseModel):
    product_id: int


class BomLineIn(BaseModel):
    component_id: int | None = None
    quantity_per_unit: Decimal | None = Field(default=None)


class OrderDetailsIn(BaseModel):
    quantity: Decimal | None = None
    start_date: date | None = None
    priority: Priority | None = None
    notes: str | None = Field(default=None, max_length=2000)


class SubmitIn(BaseModel):
    confirm_shortage: bool = False


class ItemUpdateIn(BaseModel):
    id: int
    quantity: Decimal


# ---- Output shaping ----
def requirement_out(ln: StockRequirementLine) -> dict:
    return {
        "material_id": ln.material_id,
        "material_name": ln.material_name,
        "item_id": ln.item_id,
        "uom": ln.unit_of_measure,
        "required": fmt_qty(ln.required_quantity),
        "available": fmt_qty(ln.available_quantity),
        "sufficient": ln.is_sufficient,
    }


def order_out(o: ProductionOrder) -> dict:
    return {
        "id": o.id,
        "number": o.order_number,
        "product_id": o.product_id,
        "product_name": o.product_name,
        "quantity": fmt_qty(o.quantity),
        "status": o.status.value,
        "priority": o.priority.value,
        "start_date": o.start_date.isoformat() if o.start_date else None,
        "end_date": o.end_date.isoformat() if o.end_date else None,
        "notes": o.notes,
        "progress": o.progress_percentage,
        # The only transition offered for the current status.
        "next_action": {"Planned": "start", "Started": "complete"}.get(o.status.value),
    }


def wizard_out(sid: str, w: ProductionWizard) -> dict:
    return {
        "id": sid,
        "step": w.step.value,
        "step_number": w.step_number,
        "finished_goods": [material_out(m) for m in w.finished_goods],
        "raw_materials": [material_out(m) for m in w.raw_materials],
        "product": material_out(w.product) if w.product else None,
        "bom_lines": [
            {"component_id": ln.component_id, "quantity_per_unit": fmt_qty(ln.quantity_per_unit)} for ln in w.bom_lines
        ],
        "order": {
            "quantity": fmt_qty(w.quantity),
            "start_date": w.start_date.isoformat(),
            "priority": w.priority.value,
            "notes": w.notes,
        },
        "requirements": [requirement_out(ln) for ln in w.requirements],
        "has_shortage": w.has_shortage,
        "submitting": w.submitting,
        "created_order_id": w.created_order_id,
        "error": w.error,
        "warnings": list(w.warnings),
    }


def _error_detail(err: ProductionError) -> dict:
    detail: dict = {"message": err.user_message, "error": type(err).__name__}
    if isinstance(err, ShortageNotConfirmed):
        detail["requires_confirmation"] = True
        detail["shortages"] = [requirement_out(ln) for ln in err.lines]
    if isinstance(err, InsufficientStock):
        detail["material"] = err.material
        detail["material_id"] = err.material_id
        detail["required"] = fmt_qty(err.required) if err.required is not None else None
        detail["available"] = fmt_qty(err.available) if err.available is not None else None
    return detail


def _status_for(err: ProductionError) -> int:
    if isinstance(err, OrderNotFound):
        return 404
    if isinstance(err, (IncompleteBom, InvalidOrderCommand, OrderCreationRejected)):
        return 400
    if isinstance(err, BackendUnreachable):
        return 502
    # illegal transitions, in-flight actions, unconfirmed shortages, backend rejections
    return 409


def _raise_for(result: ActionResult) -> None:
    if not result.ok:
        raise HTTPException(_status_for(result.error), _error_detail(result.error))


def _wizard(sid: str, rt: ConsoleRuntime) -> ProductionWizard:
    w = rt.sessions.get(sid)
    if not w:
        raise HTTPException(404, "wizard session not found")
    return w


def _step(fn, *args):
    try:
        return fn(*args)
    except IllegalWizardTransition as e:
        raise HTTPException(409, _error_detail(e))
    except IndexError:
        raise HTTPException(404, "no such BOM line")
    except ValueError as e:
        raise HTTPException(400, str(e))


# ---- Wizard ----
@router.post("/wizard")
async def open_wizard(rt: ConsoleRuntime = Depends(get_runtime)):
    w = rt.new_wizard()
    await w.load_materials()
    sid = rt.sessions.open(w)
    return wizard_out(sid, w)


@router.get("/wizard/{sid}")
async def get_wizard(sid: str, rt: ConsoleRuntime = Depends(get_runtime)):
    return wizard_out(sid, _wizard(sid, rt))


@router.post("/wizard/{sid}/product")
async def select_product(sid: str, payload: ProductIn, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    if not _step(w.select_product, payload.product_id):
        raise HTTPException(400, {"message": w.error})
    return wizard_out(sid, w)


@router.post("/wizard/{sid}/bom/lines")
async def add_bom_line(sid: str, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    _step(w.add_line)
    return wizard_out(sid, w)


@router.put("/wizard/{sid}/bom/lines/{index}")
async def update_bom_line(sid: str, index: int, payload: BomLineIn, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    w.warnings = []
    if "component_id" in payload.model_fields_set:
        _step(w.select_component, index, payload.component_id)
    if payload.quantity_per_unit is not None:
        _step(w.set_component_quantity, index, payload.quantity_per_unit)
    return wizard_out(sid, w)


@router.delete("/wizard/{sid}/bom/lines/{index}")
async def remove_bom_line(sid: str, index: int, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    _step(w.remove_line, index)
    return wizard_out(sid, w)


@router.post("/wizard/{sid}/next")
async def wizard_next(sid: str, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    if not _step(w.next):
        raise HTTPException(400, {"message": w.error})
    return wizard_out(sid, w)


@router.post("/wizard/{sid}/back")
async def wizard_back(sid: str, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    _step(w.back)
    return wizard_out(sid, w)


@router.put("/wizard/{sid}/order")
async def set_order_details(sid: str, payload: OrderDetailsIn, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    _step(lambda: w.set_order_details(start_date=payload.start_date, priority=payload.priority, notes=payload.notes))
    if payload.quantity is not None:
        _step(w.set_order_quantity, payload.quantity)
    return wizard_out(sid, w)


@router.post("/wizard/{sid}/submit")
async def submit_wizard(sid: str, payload: SubmitIn | None = None, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    try:
        result = await w.submit(confirm_shortage=bool(payload and payload.confirm_shortage))
    except IllegalWizardTransition as e:
        raise HTTPException(409, _error_detail(e))
    _raise_for(result)
    rt.sessions.close(sid)
    return {"ok": True, "order_id": result.order_id, "message": result.message}


@router.delete("/wizard/{sid}")
async def cancel_wizard(sid: str, rt: ConsoleRuntime = Depends(get_runtime)):
    w = _wizard(sid, rt)
    _step(w.cancel)
    rt.sessions.close(sid)
    return {"ok": True, "step": w.step.value}


# ---- Orders ----
@router.get("/orders")
async def list_orders(rt: ConsoleRuntime = Depends(get_runtime)):
    orders = await rt.lifecycle.list_orders()
    return {"orders": [order_out(o) for o in orders], "error": rt.lifecycle.last_error}


@router.get("/orders/{order_id}")
async def get_order(order_id: int, rt: ConsoleRuntime = Depends(get_runtime)):
    try:
        detail = await rt.lifecycle.order_detail(order_id)
    except ProductionError as e:
        raise HTTPException(_status_for(e), _error_detail(e))
    return {
        **order_out(detail.order),
        "items": [requirement_out(ln) for ln in detail.lines],
        "has_shortage": detail.has_shortage,
    }


@router.put("/orders/{order_id}/items")
async def update_order_items(order_id: int, payload: list[ItemUpdateIn], rt: ConsoleRuntime = Depends(get_runtime)):
    result = await rt.lifecycle.update_items(order_id, [OrderItemUpdate(p.id, p.quantity) for p in payload])
    _raise_for(result)
    return {"ok": True, "message": result.message}


@router.post("/orders/{order_id}/start")
async def start_order(order_id: int, rt: ConsoleRuntime = Depends(get_runtime)):
    result = await rt.lifecycle.start(order_id)
    _raise_for(result)
    return {"ok": True, "message": result.message}


@router.post("/orders/{order_id}/complete")
async def complete_order(order_id: int, rt: ConsoleRuntime = Depends(get_runtime)):
    result = await rt.lifecycle.complete(order_id)
    _raise_for(result)
    return {"ok": True, "message": result.message}


@router.get("/dashboard")
async def dashboard(rt: ConsoleRuntime = Depends(get_runtime)):
    orders = await rt.lifecycle.list_orders()
    m = compute_metrics(orders)
    return {
        "active_orders": m.active_orders,
        "in_progress": m.in_progress,
        "completed_today": m.completed_today,
        "efficiency": m.efficiency,
        "orders": [order_out(o) for o in orders],
    }
