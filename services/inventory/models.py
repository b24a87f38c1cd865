from __future__ import annotations
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class MaterialType(str, Enum):
    RAW_MATERIAL = "RawMaterial"
    FINISHED_GOOD = "FinishedGood"


# Integer codes seen from the backend across revisions. 0 has always been raw
# material; finished goods shipped as 1 in one revision and 2 in another.
_TYPE_CODES = {0: MaterialType.RAW_MATERIAL, 1: MaterialType.FINISHED_GOOD, 2: MaterialType.FINISHED_GOOD}


def normalize_material_type(value: Any) -> MaterialType | None:
    """Map any accepted discriminator ("RawMaterial", "raw", 0, "2", ...) to the enum.

    Returns None for anything unrecognized so the material falls out of both
    partitions instead of being misfiled.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, MaterialType):
        return value
    if isinstance(value, int):
        return _TYPE_CODES.get(value)
    token = str(value).strip().lower()
    if token.isdigit():
        return _TYPE_CODES.get(int(token))
    if "raw" in token:
        return MaterialType.RAW_MATERIAL
    if "finished" in token:
        return MaterialType.FINISHED_GOOD
    return None


class Material(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    material_code: str = ""
    material_name: str = ""
    material_type: MaterialType | None = None
    unit_of_measure: str = ""
    unit_price: Decimal = Decimal("0")
    current_stock_level: Decimal = Decimal("0")
    minimum_stock_level: Decimal = Decimal("0")

    @field_validator("material_type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return normalize_material_type(v)

    @field_validator("material_code", "material_name", "unit_of_measure", mode="before")
    @classmethod
    def _none_to_blank(cls, v):
        return "" if v is None else v

    @field_validator("unit_price", "current_stock_level", "minimum_stock_level", mode="before")
    @classmethod
    def _none_to_zero(cls, v):
        return Decimal("0") if v is None else v

    @property
    def is_raw_material(self) -> bool:
        return self.material_type is MaterialType.RAW_MATERIAL

    @property
    def is_finished_good(self) -> bool:
        return self.material_type is MaterialType.FINISHED_GOOD

    @property
    def is_below_minimum(self) -> bool:
        return self.current_stock_level < self.minimum_stock_level
