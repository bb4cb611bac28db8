from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel

from precast_pricing.services.cost_breakdown_service import CostBreakdown, MaterialCostLine
from precast_pricing.services.price_history_service import PriceComparison


def _f(value) -> Optional[float]:
    return float(value) if value is not None else None


class MaterialCostLineDTO(BaseModel):
    material_id: str
    material_code: str
    material_name: str
    unit: str
    quantity_per_unit: float
    waste_factor: float
    effective_quantity: float
    unit_price: Optional[float] = None
    price_valid_from: Optional[date] = None
    cost: float
    missing_price: bool

    @classmethod
    def from_domain_model(cls, line: MaterialCostLine) -> "MaterialCostLineDTO":
        return cls(
            material_id=line.material_id,
            material_code=line.material_code,
            material_name=line.material_name,
            unit=line.unit,
            quantity_per_unit=float(line.quantity_per_unit),
            waste_factor=float(line.waste_factor),
            effective_quantity=float(line.effective_quantity),
            unit_price=_f(line.unit_price),
            price_valid_from=line.price_valid_from,
            cost=float(line.cost),
            missing_price=line.missing_price,
        )


class CostTermsDTO(BaseModel):
    materials: float
    process: float
    labor_concrete: float
    labor_steel: float
    total: float


class CostBreakdownDTO(BaseModel):
    piece_id: str
    zone_id: str
    as_of: date

    cost: CostTermsDTO
    process_terms: Dict[str, float]
    lines: List[MaterialCostLineDTO]

    parameters_month: Optional[date] = None
    fallback: bool

    warnings: List[str]
    missing_prices: List[str]
    missing_geom: bool
    missing_process_params: bool

    @classmethod
    def from_domain_model(cls, breakdown: CostBreakdown) -> "CostBreakdownDTO":
        return cls(
            piece_id=breakdown.piece_id,
            zone_id=breakdown.zone_id,
            as_of=breakdown.as_of,
            cost=CostTermsDTO(
                materials=float(breakdown.materials_cost),
                process=float(breakdown.process_cost),
                labor_concrete=float(breakdown.labor_concrete_cost),
                labor_steel=float(breakdown.labor_steel_cost),
                total=float(breakdown.total),
            ),
            process_terms={k: float(v) for k, v in breakdown.process_terms.items()},
            lines=[MaterialCostLineDTO.from_domain_model(line) for line in breakdown.lines],
            parameters_month=breakdown.parameters_month,
            fallback=breakdown.fallback,
            warnings=list(breakdown.warnings),
            missing_prices=list(breakdown.missing_prices),
            missing_geom=breakdown.missing_geom,
            missing_process_params=breakdown.missing_process_params,
        )


class PriceComparisonDTO(BaseModel):
    as_of: date
    current_price: Optional[float] = None
    previous_as_of: date
    previous_price: Optional[float] = None
    previous_effective_date: Optional[date] = None
    delta: Optional[float] = None
    delta_percent: Optional[float] = None
    trend: str

    @classmethod
    def from_domain_model(cls, comparison: PriceComparison) -> "PriceComparisonDTO":
        return cls(
            as_of=comparison.as_of,
            current_price=_f(comparison.current_price),
            previous_as_of=comparison.previous_as_of,
            previous_price=_f(comparison.previous_price),
            previous_effective_date=comparison.previous_effective_date,
            delta=_f(comparison.delta),
            delta_percent=_f(comparison.delta_percent),
            trend=comparison.trend.value,
        )
