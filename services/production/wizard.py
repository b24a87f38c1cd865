from __future__ import annotations
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum

from app.core.decimals import dec
from app.core.http import BackendError, BackendUnavailable
from services.inventory.catalog import MaterialCatalog, index_by_id, partition_by_type
from services.inventory.models import Material
from services.production.bom import DEFAULT_LINES, BomDefinitionBuilder, FrozenBomLine
from services.production.errors import (
    ActionInFlight,
    BackendUnreachable,
    IllegalWizardTransition,
    IncompleteBom,
    InvalidOrderCommand,
    ProductionError,
    ShortageNotConfirmed,
)
from services.production.gateway import ProductionGateway
from services.production.lifecycle import ActionResult, ActionStatus, LifecycleController
from services.production.models import CreateOrderCommand, OrderItemInput, Priority, parse_priority
from services.production.requirements import StockRequirementLine, compute_requirements, has_shortage, shortages

logger = logging.getLogger(__name__)


class WizardStep(str, Enum):
    SELECT_PRODUCT = "select-product"
    DEFINE_BOM = "define-bom"
    REVIEW_AND_SUBMIT = "review-and-submit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WizardAction(str, Enum):
    NEXT = "next"
    BACK = "back"
    SUBMITTED = "submitted"
    CANCEL = "cancel"


TRANSITIONS: dict[tuple[WizardStep, WizardAction], WizardStep] = {
    (WizardStep.SELECT_PRODUCT, WizardAction.NEXT): WizardStep.DEFINE_BOM,
    (WizardStep.SELECT_PRODUCT, WizardAction.CANCEL): WizardStep.CANCELLED,
    (WizardStep.DEFINE_BOM, WizardAction.NEXT): WizardStep.REVIEW_AND_SUBMIT,
    (WizardStep.DEFINE_BOM, WizardAction.BACK): WizardStep.SELECT_PRODUCT,
    (WizardStep.DEFINE_BOM, WizardAction.CANCEL): WizardStep.CANCELLED,
    (WizardStep.REVIEW_AND_SUBMIT, WizardAction.BACK): WizardStep.DEFINE_BOM,
    (WizardStep.REVIEW_AND_SUBMIT, WizardAction.SUBMITTED): WizardStep.COMPLETED,
    (WizardStep.REVIEW_AND_SUBMIT, WizardAction.CANCEL): WizardStep.CANCELLED,
}

STEP_NUMBERS = {WizardStep.SELECT_PRODUCT: 1, WizardStep.DEFINE_BOM: 2, WizardStep.REVIEW_AND_SUBMIT: 3}


class ProductionWizard:
    """Guided order creation: pick a finished good, define its BOM, review stock, submit.

    Nothing is persisted until ``LifecycleController.create`` succeeds, so
    cancelling at any step has no side effects. Validation problems are
    reported through ``error``/``warnings`` and leave the wizard where it was;
    only a transition missing from ``TRANSITIONS`` raises.
    """

    def __init__(
        self,
        catalog: MaterialCatalog,
        lifecycle: LifecycleController,
        *,
        gateway: ProductionGateway | None = None,
        persist_bom: bool = False,
        today: date | None = None,
    ):
        self.catalog = catalog
        self.lifecycle = lifecycle
        self.gateway = gateway
        self.persist_bom = persist_bom

        self.step = WizardStep.SELECT_PRODUCT
        self.raw_materials: list[Material] = []
        self.finished_goods: list[Material] = []
        self._materials_by_id: dict[int, Material] = {}

        self.product: Material | None = None
        self.bom_builder: BomDefinitionBuilder | None = None
        self.bom: tuple[FrozenBomLine, ...] = ()
        self.requirements: list[StockRequirementLine] = []

        self.quantity = Decimal("1")
        self.start_date = today or date.today()
        self.priority = Priority.MEDIUM
        self.notes = ""

        self.submitting = False
        self.created_order_id: int | None = None
        self.error: str | None = None
        self.warnings: list[str] = []

    # ---- state machine ----
    def _advance(self, action: WizardAction) -> None:
        nxt = TRANSITIONS.get((self.step, action))
        if nxt is None:
            raise IllegalWizardTransition(self.step.value, action.value)
        logger.debug("wizard %s --%s--> %s", self.step.value, action.value, nxt.value)
        self.step = nxt

    def _require(self, step: WizardStep, action: str) -> None:
        if self.step is not step:
            raise IllegalWizardTransition(self.step.value, action)

    @property
    def step_number(self) -> int:
        return STEP_NUMBERS.get(self.step, 3)

    @property
    def is_finished(self) -> bool:
        return self.step in (WizardStep.COMPLETED, WizardStep.CANCELLED)

    @property
    def has_shortage(self) -> bool:
        return has_shortage(self.requirements)

    # ---- step 1 ----
    async def load_materials(self) -> None:
        materials = await self.catalog.load_materials()
        part = partition_by_type(materials)
        self.raw_materials = part.raw_materials
        self.finished_goods = part.finished_goods
        self._materials_by_id = index_by_id(materials)
        self.error = f"Materials could not be loaded: {self.catalog.last_error}" if self.catalog.last_error else None

    def select_product(self, product_id: int) -> bool:
        self._require(WizardStep.SELECT_PRODUCT, "select a product")
        product = next((p for p in self.finished_goods if p.id == product_id), None)
        if product is None:
            self.error = "Select a finished product."
            return False
        self.product = product
        return self.next()

    # ---- step 2 ----
    @property
    def bom_lines(self):
        return self.bom_builder.lines if self.bom_builder else []

    def add_line(self) -> None:
        self._require(WizardStep.DEFINE_BOM, "add a component")
        self.bom_builder.add_line()

    def remove_line(self, index: int) -> None:
        self._require(WizardStep.DEFINE_BOM, "remove a component")
        self.bom_builder.remove_line(index)

    def select_component(self, index: int, component_id: int | None) -> str | None:
        self._require(WizardStep.DEFINE_BOM, "select a component")
        warning = self.bom_builder.select_component(index, component_id)
        if warning:
            self.warnings.append(warning)
        return warning

    def set_component_quantity(self, index: int, quantity) -> None:
        self._require(WizardStep.DEFINE_BOM, "set a component quantity")
        self.bom_builder.set_quantity(index, quantity)

    # ---- navigation ----
    def next(self) -> bool:
        self.error = None
        self.warnings = []
        if self.step is WizardStep.SELECT_PRODUCT:
            if self.product is None:
                self.error = "Select a finished product."
                return False
            self.bom_builder = BomDefinitionBuilder(self.product.id, DEFAULT_LINES)
            self.bom = ()
            self.requirements = []
            self._advance(WizardAction.NEXT)
            return True

        if self.step is WizardStep.DEFINE_BOM:
            try:
                self.bom = self.bom_builder.freeze()
            except IncompleteBom as e:
                self.error = e.user_message
                return False
            self._advance(WizardAction.NEXT)
            self._recompute()
            return True

        self._advance(WizardAction.NEXT)
        return True

    def back(self) -> None:
        self.error = None
        self.warnings = []
        self._advance(WizardAction.BACK)

    def cancel(self) -> None:
        self._advance(WizardAction.CANCEL)

    # ---- step 3 ----
    def set_order_quantity(self, quantity) -> None:
        self._require(WizardStep.REVIEW_AND_SUBMIT, "change the quantity")
        self.quantity = dec(quantity)
        self._recompute()

    def set_order_details(self, *, start_date: date | None = None, priority=None, notes: str | None = None) -> None:
        self._require(WizardStep.REVIEW_AND_SUBMIT, "edit order details")
        if start_date is not None:
            self.start_date = start_date
        if priority is not None:
            self.priority = parse_priority(priority)
        if notes is not None:
            self.notes = notes

    def _recompute(self) -> None:
        # The snapshot is the one loaded with the wizard; BOM is frozen.
        self.requirements = compute_requirements(self.bom, self.quantity, self._materials_by_id)

    def _command(self) -> CreateOrderCommand:
        return CreateOrderCommand(
            product_id=self.product.id,
            quantity=self.quantity,
            start_date=datetime.combine(self.start_date, time.min, tzinfo=timezone.utc),
            items=tuple(OrderItemInput(ln.material_id, ln.required_quantity) for ln in self.requirements),
            priority=self.priority,
            notes=self.notes,
        )

    async def submit(self, confirm_shortage: bool = False) -> ActionResult:
        self._require(WizardStep.REVIEW_AND_SUBMIT, "submit")
        result = ActionResult("create", ActionStatus.PENDING)

        if self.submitting:
            return self._failed(result, ActionInFlight("The order is already being submitted."))
        if self.quantity <= 0:
            return self._failed(result, InvalidOrderCommand("Order quantity must be greater than zero."))
        if self.has_shortage and not confirm_shortage:
            return self._failed(result, ShortageNotConfirmed(shortages(self.requirements)))

        self.submitting = True
        self.error = None
        try:
            if self.persist_bom and self.gateway is not None:
                try:
                    await self.gateway.create_bom(self.product.id, self.bom)
                except BackendError as e:
                    return self._failed(result, ProductionError(f"Recipe could not be saved: {e.message}"))
                except BackendUnavailable as e:
                    return self._failed(result, BackendUnreachable(str(e)))
            result = await self.lifecycle.create(self._command())
        finally:
            self.submitting = False

        if result.ok:
            self.created_order_id = result.order_id
            self._advance(WizardAction.SUBMITTED)
        else:
            self.error = result.message
        return result

    def _failed(self, result: ActionResult, error: ProductionError) -> ActionResult:
        result.status = ActionStatus.FAILED
        result.error = error
        result.message = error.user_message
        self.error = error.user_message
        return result
