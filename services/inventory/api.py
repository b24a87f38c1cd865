from __future__ import annotations
from fastapi import APIRouter, Depends

from app.core.runtime import ConsoleRuntime, get_runtime
from services.inventory.catalog import partition_by_type
from services.inventory.models import Material

router = APIRouter(prefix="/inventory", tags=["inventory"])


def material_out(m: Material) -> dict:
    return {
        "id": m.id,
        "code": m.material_code,
        "name": m.material_name,
        "type": m.material_type.value if m.material_type else None,
        "uom": m.unit_of_measure,
        "unit_price": str(m.unit_price),
        "current_stock": str(m.current_stock_level),
        "minimum_stock": str(m.minimum_stock_level),
        "below_minimum": m.is_below_minimum,
    }


@router.get("/materials")
async def list_materials(rt: ConsoleRuntime = Depends(get_runtime)):
    materials = await rt.catalog.load_materials()
    part = partition_by_type(materials)
    return {
        "raw_materials": [material_out(m) for m in part.raw_materials],
        "finished_goods": [material_out(m) for m in part.finished_goods],
        "error": rt.catalog.last_error,
    }
