'''
Request payloads. Types and required fields only; business rules live in services.
'''
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PublishPriceRequest(_Request):
    zone_id: str
    effective_date: date
    # omitted -> computed by the calculator
    price: Optional[Decimal] = None
    adjustment: Decimal = Decimal("0")


class CopyZonePricesRequest(_Request):
    source_zone_id: str
    target_zone_id: str
    effective_date: date
    adjustment_percentage: Decimal = Decimal("0")


class CopyFormulaRequest(_Request):
    overwrite: bool = False


class ProcessParametersRequest(_Request):
    zone_id: str
    month_date: date
    energy_per_ton: Optional[Decimal] = None
    overhead_factory_per_ton: Optional[Decimal] = None
    overhead_company_per_ton: Optional[Decimal] = None
    profit_per_ton: Optional[Decimal] = None
    engineering_per_ton: Optional[Decimal] = None
    labor_rate_per_hour: Optional[Decimal] = None
    hours_per_ton_steel: Optional[Decimal] = None
    hours_per_m3_concrete: Optional[Decimal] = None

    def parameter_fields(self) -> Dict[str, Decimal]:
        return self.model_dump(exclude={"zone_id", "month_date"}, exclude_none=True)


class CopyPreviousParametersRequest(_Request):
    zone_id: str
    month_date: date


class ClosePeriodRequest(_Request):
    zone_id: str
    month_date: date


class MaterialPriceRequest(_Request):
    material_id: str
    zone_id: str
    price: Decimal
    valid_from: date


class ImportPricesRequest(_Request):
    zone_id: str
    month_date: date
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    # CSV text as an alternative to rows
    csv: Optional[str] = None

    @model_validator(mode="after")
    def _one_source(self) -> "ImportPricesRequest":
        if self.csv is not None and self.rows:
            raise ValueError("send either rows or csv, not both")
        return self


class RecalculateImpactRequest(_Request):
    material_id: str
    zone_id: str
    as_of: Optional[date] = None


class PricingPolicyRequest(_Request):
    include_factory_overhead: Optional[bool] = None
    include_company_overhead: Optional[bool] = None
    include_profit: Optional[bool] = None
    include_engineering: Optional[bool] = None
    money_places: Optional[int] = Field(default=None, ge=0, le=8)
