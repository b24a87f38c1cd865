"""Failure taxonomy of the production workflow.

Every error carries a ``user_message``: the sentence shown to the operator.
Validation errors never reach the backend; transition failures are built from
the backend's error payload by the ``*_failure`` helpers below.
"""
from __future__ import annotations
import re
from decimal import Decimal
from typing import Any

from app.core.decimals import dec, fmt_qty
from app.core.http import BackendError


class ProductionError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.user_message = message


# ---- local validation ----
class IncompleteBom(ProductionError):
    pass


class InvalidOrderCommand(ProductionError):
    pass


class IllegalTransition(ProductionError):
    def __init__(self, order_id: int, status: str, action: str):
        super().__init__(f"Order #{order_id} is {status}; it cannot be {action}.")
        self.order_id = order_id
        self.status = status
        self.action = action


class IllegalWizardTransition(ProductionError):
    def __init__(self, step: str, action: str):
        super().__init__(f"Cannot {action} from step '{step}'.")
        self.step = step
        self.action = action


class ActionInFlight(ProductionError):
    pass


class OrderNotFound(ProductionError):
    def __init__(self, order_id: int):
        super().__init__(f"Production order #{order_id} was not found.")
        self.order_id = order_id


# ---- soft warning ----
class ShortageNotConfirmed(ProductionError):
    def __init__(self, lines: list):
        names = ", ".join(
            f"{ln.material_name} (required {fmt_qty(ln.required_quantity)}, available {fmt_qty(ln.available_quantity)})"
            for ln in lines
        )
        super().__init__(f"Not enough stock for: {names}. Confirm to create the order anyway.")
        self.lines = lines


# ---- backend-authoritative failures ----
class BackendFailure(ProductionError):
    def __init__(self, message: str, backend_message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.backend_message = backend_message
        self.status_code = status_code


class OrderCreationRejected(BackendFailure):
    pass


class InsufficientStock(BackendFailure):
    def __init__(
        self,
        material: str,
        required: Decimal | None,
        available: Decimal | None,
        *,
        material_id: int | None = None,
        backend_message: str | None = None,
        status_code: int | None = None,
    ):
        if required is not None and available is not None:
            detail = f"required {fmt_qty(required)}, available {fmt_qty(available)}"
        else:
            detail = backend_message or "stock is short"
        super().__init__(
            f"Not enough {material} in stock ({detail}). Purchase more before starting production.",
            backend_message,
            status_code,
        )
        self.material = material
        self.material_id = material_id
        self.required = required
        self.available = available


class BomNotDefined(BackendFailure):
    def __init__(self, product: str, *, backend_message: str | None = None, status_code: int | None = None):
        super().__init__(
            f"{product} has no components defined. Define its bill of materials first.",
            backend_message,
            status_code,
        )
        self.product = product


class ProductionStartFailed(BackendFailure):
    pass


class ProductionCompletionFailed(BackendFailure):
    pass


class ItemUpdateRejected(BackendFailure):
    pass


class BackendUnreachable(BackendFailure):
    def __init__(self, detail: str):
        super().__init__(f"The ERP backend could not be reached ({detail}). Try again.", detail)


# "Insufficient stock for Steel Sheet. Required: 10, Available: 5"
_SHORT_RE = re.compile(
    r"insufficient stock (?:for|of) (?:material )?['\"]?(?P<material>.+?)['\"]?[.,;:]?\s+"
    r"required\W+(?P<required>\d+(?:\.\d+)?)\W+available\W+(?P<available>\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
_BOM_RE = re.compile(r"\b(bom|bill of materials|components?)\b.*\b(not (defined|found)|missing|no )|\bno (bom|components?)\b", re.IGNORECASE)


def _first(payload: dict, *keys: str) -> Any:
    for k in keys:
        if payload.get(k) not in (None, ""):
            return payload[k]
    return None


def _error_code(payload: dict) -> str:
    code = _first(payload, "code", "errorCode", "error_code", "type") or ""
    return str(code).replace("_", "").replace(" ", "").lower()


def start_failure(err: BackendError, *, product: str = "This product") -> BackendFailure:
    """Classify a rejected ``POST /orders/{id}/start``."""
    payload = err.payload if isinstance(err.payload, dict) else {}
    code = _error_code(payload)
    text = err.message

    m = _SHORT_RE.search(text or "")
    if "insufficientstock" in code or m or "insufficient stock" in (text or "").lower():
        material = _first(payload, "materialName", "material", "componentName")
        required = _first(payload, "required", "requiredQuantity")
        available = _first(payload, "available", "availableQuantity")
        if m:
            material = material or m.group("material").strip()
            required = required if required is not None else m.group("required")
            available = available if available is not None else m.group("available")
        material_id = _first(payload, "materialId", "componentId")
        return InsufficientStock(
            str(material or "a component"),
            dec(required) if required is not None else None,
            dec(available) if available is not None else None,
            material_id=int(material_id) if material_id is not None else None,
            backend_message=text,
            status_code=err.status_code,
        )

    if "bomnotdefined" in code or _BOM_RE.search(text or ""):
        return BomNotDefined(product, backend_message=text, status_code=err.status_code)

    return ProductionStartFailed(f"Production could not be started: {text}", text, err.status_code)


def completion_failure(err: BackendError) -> ProductionCompletionFailed:
    return ProductionCompletionFailed(f"Production could not be completed: {err.message}", err.message, err.status_code)


def creation_failure(err: BackendError) -> OrderCreationRejected:
    # shown verbatim
    return OrderCreationRejected(err.message, err.message, err.status_code)
