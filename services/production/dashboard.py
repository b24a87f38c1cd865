from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from services.production.models import OrderStatus, ProductionOrder


@dataclass(frozen=True)
class ProductionMetrics:
    active_orders: int
    in_progress: int
    completed_today: int
    efficiency: int  # percent of all orders that are completed


def _local_day(moment: datetime) -> date:
    # Aware timestamps are shifted to local time so they match date.today().
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone().date()


def compute_metrics(orders: Iterable[ProductionOrder], today: date | None = None) -> ProductionMetrics:
    orders = list(orders)
    today = today or date.today()
    active = sum(1 for o in orders if o.status in (OrderStatus.PLANNED, OrderStatus.STARTED))
    started = sum(1 for o in orders if o.status is OrderStatus.STARTED)
    completed = [o for o in orders if o.status is OrderStatus.COMPLETED]
    completed_today = sum(1 for o in completed if o.end_date is not None and _local_day(o.end_date) == today)
    efficiency = round(len(completed) / (len(orders) or 1) * 100)
    return ProductionMetrics(active, started, completed_today, efficiency)
