from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal

from app.core.decimals import dec
from services.production.errors import IncompleteBom

logger = logging.getLogger(__name__)

DEFAULT_LINES = 2


@dataclass
class BomComponentLine:
    component_id: int | None = None
    quantity_per_unit: Decimal = Decimal("1")


@dataclass(frozen=True)
class FrozenBomLine:
    component_id: int
    quantity_per_unit: Decimal


class BomDefinitionBuilder:
    """Collects (component, quantity per unit) lines for one target product.

    Duplicate and self-referencing selections are refused on the spot: the
    line is cleared and a warning string is returned for display.
    """

    def __init__(self, product_id: int, lines: int = 0):
        self.product_id = product_id
        self.lines: list[BomComponentLine] = []
        self.reset(lines)

    def reset(self, lines: int = DEFAULT_LINES) -> None:
        self.lines = [BomComponentLine() for _ in range(lines)]

    def _checked(self, index: int) -> int:
        # Positions only; negative indices would alias lines from the end.
        if not 0 <= index < len(self.lines):
            raise IndexError(f"no BOM line at position {index}")
        return index

    def add_line(self) -> BomComponentLine:
        line = BomComponentLine()
        self.lines.append(line)
        return line

    def remove_line(self, index: int) -> None:
        del self.lines[self._checked(index)]

    def select_component(self, index: int, component_id: int | None) -> str | None:
        line = self.lines[self._checked(index)]
        if component_id is None:
            line.component_id = None
            return None
        if component_id == self.product_id:
            line.component_id = None
            logger.info("rejected self-reference: product %s on line %d", component_id, index)
            return "A product cannot be a component of itself."
        if any(i != index and ln.component_id == component_id for i, ln in enumerate(self.lines)):
            line.component_id = None
            logger.info("rejected duplicate component %s on line %d", component_id, index)
            return "This component is already added."
        line.component_id = component_id
        return None

    def set_quantity(self, index: int, quantity) -> None:
        self.lines[self._checked(index)].quantity_per_unit = dec(quantity)

    def validate(self) -> None:
        if not self.lines:
            raise IncompleteBom("Please add at least one raw material.")
        for n, ln in enumerate(self.lines, start=1):
            if ln.component_id is None:
                raise IncompleteBom(f"Line {n}: select a raw material.")
            if ln.quantity_per_unit <= 0:
                raise IncompleteBom(f"Line {n}: quantity per unit must be greater than zero.")

    def freeze(self) -> tuple[FrozenBomLine, ...]:
        self.validate()
        return tuple(FrozenBomLine(ln.component_id, ln.quantity_per_unit) for ln in self.lines)
