from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import ValidationError

from app.core.http import BackendError, BackendUnavailable, ErpClient
from services.inventory.models import Material, MaterialType

logger = logging.getLogger(__name__)


@dataclass
class MaterialPartition:
    raw_materials: list[Material] = field(default_factory=list)
    finished_goods: list[Material] = field(default_factory=list)


def partition_by_type(materials: Iterable[Material]) -> MaterialPartition:
    part = MaterialPartition()
    for m in materials:
        if m.material_type is MaterialType.RAW_MATERIAL:
            part.raw_materials.append(m)
        elif m.material_type is MaterialType.FINISHED_GOOD:
            part.finished_goods.append(m)
    return part


def index_by_id(materials: Iterable[Material]) -> dict[int, Material]:
    return {m.id: m for m in materials}


class MaterialCatalog:
    """Read-only view of inventory materials served by ``GET /inventory/materials``."""

    def __init__(self, client: ErpClient):
        self._client = client
        self.last_error: str | None = None

    async def list_materials(self) -> list[Material]:
        rows = await self._client.get("/inventory/materials")
        materials = [Material.model_validate(r) for r in (rows or [])]
        untyped = [m.id for m in materials if m.material_type is None]
        if untyped:
            logger.warning("materials with unrecognized type ignored by partitioning: %s", untyped)
        return materials

    async def load_materials(self) -> list[Material]:
        """``list_materials`` for callers that render a list: failures yield ``[]``.

        The failure text is kept in ``last_error``; calling again retries.
        """
        try:
            materials = await self.list_materials()
        except (BackendError, BackendUnavailable, ValidationError) as e:
            logger.error("could not load materials: %s", e)
            self.last_error = str(e)
            return []
        self.last_error = None
        return materials
