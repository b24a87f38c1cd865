from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from pydantic import ValidationError

from app.core.http import BackendError, BackendUnavailable
from app.core.tenant import get_tenant_id
from services.inventory.catalog import MaterialCatalog, index_by_id
from services.production.errors import (
    ActionInFlight,
    BackendFailure,
    BackendUnreachable,
    IllegalTransition,
    InvalidOrderCommand,
    ItemUpdateRejected,
    OrderNotFound,
    ProductionError,
    completion_failure,
    creation_failure,
    start_failure,
)
from services.production.gateway import ProductionGateway
from services.production.models import CreateOrderCommand, OrderItemUpdate, OrderStatus, ProductionOrder
from services.production.requirements import StockRequirementLine, has_shortage, order_item_requirements

logger = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class ActionResult:
    action: str
    status: ActionStatus
    order_id: int | None = None
    message: str = ""
    error: ProductionError | None = None

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.COMMITTED


@dataclass
class OrderDetail:
    order: ProductionOrder
    lines: list[StockRequirementLine] = field(default_factory=list)

    @property
    def has_shortage(self) -> bool:
        return has_shortage(self.lines)


class LifecycleController:
    """Owns Planned -> Started -> Completed for persisted production orders.

    Status is never changed locally: after every transition, successful or
    not, the order list is reloaded from the backend. Each transition reads
    the order fresh and sends only the legal next step for that status;
    anything else is refused without a write.
    """

    def __init__(self, gateway: ProductionGateway, catalog: MaterialCatalog | None = None):
        self.gateway = gateway
        self.catalog = catalog
        self.orders: list[ProductionOrder] = []
        self.last_error: str | None = None
        # keyed by (tenant, order id)
        self._pending: dict[tuple[str, int], ActionResult] = {}

    # ---- reads ----
    async def list_orders(self) -> list[ProductionOrder]:
        """Reload the order list; on failure keep the previous snapshot."""
        try:
            self.orders = await self.gateway.list_orders()
        except (BackendError, BackendUnavailable, ValidationError) as e:
            logger.error("could not load production orders: %s", e)
            self.last_error = str(e)
        else:
            self.last_error = None
        return self.orders

    async def get_order(self, order_id: int) -> ProductionOrder:
        try:
            return await self.gateway.get_order(order_id)
        except BackendError as e:
            if e.status_code == 404:
                raise OrderNotFound(order_id) from e
            raise BackendFailure(f"Could not load order #{order_id}: {e.message}", e.message, e.status_code) from e
        except BackendUnavailable as e:
            raise BackendUnreachable(str(e)) from e

    async def order_detail(self, order_id: int) -> OrderDetail:
        order = await self.get_order(order_id)
        materials = await self.catalog.load_materials() if self.catalog else []
        return OrderDetail(order, order_item_requirements(order, index_by_id(materials)))

    def is_pending(self, order_id: int) -> bool:
        return self._key(order_id) in self._pending

    # ---- transitions ----
    async def create(self, command: CreateOrderCommand) -> ActionResult:
        result = ActionResult("create", ActionStatus.PENDING)
        try:
            self._check_command(command)
        except InvalidOrderCommand as e:
            return self._fail(result, e)

        try:
            order_id = await self.gateway.create_order(command)
        except BackendError as e:
            self._fail(result, creation_failure(e))
        except BackendUnavailable as e:
            self._fail(result, BackendUnreachable(str(e)))
        else:
            result.order_id = order_id
            result.status = ActionStatus.COMMITTED
            result.message = f"Production order #{order_id} created."
            logger.info("created production order %s for product %s", order_id, command.product_id)
        await self.list_orders()
        return result

    async def start(self, order_id: int) -> ActionResult:
        return await self._transition(
            order_id,
            "start",
            OrderStatus.PLANNED,
            self.gateway.start_order,
            lambda e, order: start_failure(e, product=order.product_name or f"Product #{order.product_id}"),
            "Production started. Materials deducted from stock.",
        )

    async def complete(self, order_id: int) -> ActionResult:
        return await self._transition(
            order_id,
            "complete",
            OrderStatus.STARTED,
            self.gateway.complete_order,
            lambda e, order: completion_failure(e),
            "Production completed. Finished goods added to stock.",
        )

    async def update_items(self, order_id: int, updates: list[OrderItemUpdate]) -> ActionResult:
        """Edit item quantities of an order that has not started yet."""
        if not updates or any(u.quantity <= 0 for u in updates):
            result = ActionResult("update-items", ActionStatus.PENDING, order_id)
            return self._fail(result, InvalidOrderCommand("Every item quantity must be greater than zero."))

        async def _put(oid: int) -> None:
            await self.gateway.update_order_items(oid, updates)

        return await self._transition(
            order_id,
            "update-items",
            OrderStatus.PLANNED,
            _put,
            lambda e, order: ItemUpdateRejected(f"Items could not be updated: {e.message}", e.message, e.status_code),
            "Order items updated.",
        )

    async def _transition(
        self,
        order_id: int,
        action: str,
        from_status: OrderStatus,
        call: Callable[[int], Awaitable[None]],
        classify: Callable[[BackendError, ProductionOrder], BackendFailure],
        success: str,
    ) -> ActionResult:
        result = ActionResult(action, ActionStatus.PENDING, order_id)
        key = self._key(order_id)
        if key in self._pending:
            return self._fail(result, ActionInFlight(f"Order #{order_id} already has a {self._pending[key].action} in progress."))

        self._pending[key] = result
        try:
            await self._attempt(result, from_status, call, classify, success)
        finally:
            self._pending.pop(key, None)
        await self.list_orders()
        return result

    async def _attempt(
        self,
        result: ActionResult,
        from_status: OrderStatus,
        call: Callable[[int], Awaitable[None]],
        classify: Callable[[BackendError, ProductionOrder], BackendFailure],
        success: str,
    ) -> None:
        # Legality is judged on a fresh read, never on the cached list.
        order_id = result.order_id
        try:
            order = await self.get_order(order_id)
        except ProductionError as e:
            self._fail(result, e)
            return
        if order.status is not from_status:
            verb = {"start": "started", "complete": "completed"}.get(result.action, "edited")
            self._fail(result, IllegalTransition(order_id, order.status.value, verb))
            return

        try:
            await call(order_id)
        except BackendError as e:
            self._fail(result, classify(e, order))
        except BackendUnavailable as e:
            self._fail(result, BackendUnreachable(str(e)))
        else:
            result.status = ActionStatus.COMMITTED
            result.message = success
            logger.info("order %s: %s committed", order_id, result.action)

    @staticmethod
    def _key(order_id: int) -> tuple[str, int]:
        return get_tenant_id(), order_id

    @staticmethod
    def _check_command(command: CreateOrderCommand) -> None:
        if command.quantity <= 0:
            raise InvalidOrderCommand("Order quantity must be greater than zero.")
        if not command.items:
            raise InvalidOrderCommand("Order creation failed: raw materials list is empty.")
        if any(i.quantity <= 0 for i in command.items):
            raise InvalidOrderCommand("Every raw material quantity must be greater than zero.")

    @staticmethod
    def _fail(result: ActionResult, error: ProductionError) -> ActionResult:
        result.status = ActionStatus.FAILED
        result.error = error
        result.message = error.user_message
        logger.warning("%s%s failed: %s", result.action, f" #{result.order_id}" if result.order_id else "", error.user_message)
        return result
