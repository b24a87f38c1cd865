from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from app.core.decimals import ZERO, dec
from services.inventory.models import Material
from services.production.bom import FrozenBomLine
from services.production.models import ProductionOrder


@dataclass(frozen=True)
class StockRequirementLine:
    material_id: int
    material_name: str
    required_quantity: Decimal
    available_quantity: Decimal
    unit_of_measure: str = ""
    item_id: int | None = None

    @property
    def is_sufficient(self) -> bool:
        return self.available_quantity >= self.required_quantity

    @property
    def shortfall(self) -> Decimal:
        return max(self.required_quantity - self.available_quantity, ZERO)


def _line(material_id: int, required: Decimal, materials_by_id: Mapping[int, Material], item_id: int | None = None) -> StockRequirementLine:
    # A material missing from the snapshot counts as out of stock.
    m = materials_by_id.get(material_id)
    return StockRequirementLine(
        material_id=material_id,
        material_name=m.material_name if m else "Unknown",
        required_quantity=required,
        available_quantity=m.current_stock_level if m else ZERO,
        unit_of_measure=m.unit_of_measure if m else "",
        item_id=item_id,
    )


def compute_requirements(
    bom: Iterable[FrozenBomLine],
    order_quantity,
    materials_by_id: Mapping[int, Material],
) -> list[StockRequirementLine]:
    """Required vs. available stock for every BOM line at ``order_quantity``."""
    qty = dec(order_quantity)
    return [_line(ln.component_id, ln.quantity_per_unit * qty, materials_by_id) for ln in bom]


def order_item_requirements(order: ProductionOrder, materials_by_id: Mapping[int, Material]) -> list[StockRequirementLine]:
    # Persisted items already hold order totals.
    return [_line(it.material_id, it.quantity, materials_by_id, item_id=it.id) for it in order.items]


def has_shortage(lines: Iterable[StockRequirementLine]) -> bool:
    return any(not ln.is_sufficient for ln in lines)


def shortages(lines: Iterable[StockRequirementLine]) -> list[StockRequirementLine]:
    return [ln for ln in lines if not ln.is_sufficient]
