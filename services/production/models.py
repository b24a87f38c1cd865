from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.core.decimals import to_wire


class OrderStatus(str, Enum):
    PLANNED = "Planned"
    STARTED = "Started"
    COMPLETED = "Completed"


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


_STATUS_CODES = {0: OrderStatus.PLANNED, 1: OrderStatus.STARTED, 2: OrderStatus.COMPLETED}


def parse_status(value: Any) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if value in _STATUS_CODES:
            return _STATUS_CODES[value]
    elif value is not None:
        token = str(value).strip()
        if token.isdigit() and int(token) in _STATUS_CODES:
            return _STATUS_CODES[int(token)]
        for s in OrderStatus:
            if s.value.lower() == token.lower():
                return s
    raise ValueError(f"unknown production order status: {value!r}")


def parse_priority(value: Any) -> Priority:
    if isinstance(value, Priority):
        return value
    if value in (None, ""):
        return Priority.MEDIUM
    token = str(value).strip().lower()
    for p in Priority:
        if p.value.lower() == token:
            return p
    raise ValueError(f"unknown priority: {value!r}")


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItem(_Wire):
    id: int | None = None
    material_id: int = Field(validation_alias=AliasChoices("materialId", "componentId", "material_id"))
    material_name: str | None = Field(default=None, validation_alias=AliasChoices("materialName", "componentName", "material_name"))
    quantity: Decimal


class ProductionOrder(_Wire):
    id: int
    order_number: str = ""
    product_id: int
    product_name: str = ""
    quantity: Decimal
    status: OrderStatus
    start_date: datetime | None = None
    end_date: datetime | None = None
    priority: Priority = Priority.MEDIUM
    notes: str | None = None
    created_date: datetime | None = None
    progress: int | None = None
    items: list[OrderItem] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return parse_status(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return parse_priority(v)

    @field_validator("order_number", "product_name", mode="before")
    @classmethod
    def _blank(cls, v):
        return "" if v is None else v

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, v):
        return [] if v is None else v

    @property
    def progress_percentage(self) -> int:
        if self.progress is not None:
            return self.progress
        return {OrderStatus.PLANNED: 0, OrderStatus.STARTED: 50, OrderStatus.COMPLETED: 100}[self.status]


@dataclass(frozen=True)
class OrderItemInput:
    material_id: int
    quantity: Decimal  # total for the whole order, not per unit


@dataclass(frozen=True)
class CreateOrderCommand:
    product_id: int
    quantity: Decimal
    start_date: datetime
    items: tuple[OrderItemInput, ...]
    priority: Priority = Priority.MEDIUM
    notes: str = ""

    def to_payload(self) -> dict:
        return {
            "productId": self.product_id,
            "quantity": to_wire(self.quantity),
            "startDate": self.start_date.isoformat(),
            "priority": self.priority.value,
            "notes": self.notes,
            "items": [{"materialId": i.material_id, "quantity": to_wire(i.quantity)} for i in self.items],
        }


@dataclass(frozen=True)
class OrderItemUpdate:
    item_id: int
    quantity: Decimal
