from datetime import date
from typing import Dict

from pydantic import BaseModel

from precast_pricing.models.process_parameters import ProcessParameters
from precast_pricing.services.process_parameter_service import ResolvedParameters


class ProcessParametersDTO(BaseModel):
    id: str
    zone_id: str
    month_date: date
    fallback: bool = False
    parameters: Dict[str, float]

    @classmethod
    def from_domain_model(cls, row: ProcessParameters, fallback: bool = False) -> "ProcessParametersDTO":
        return cls(
            id=row.id,
            zone_id=row.zone_id,
            month_date=row.month_date,
            fallback=fallback,
            parameters={k: float(v or 0) for k, v in row.values().items()},
        )

    @classmethod
    def from_resolved(cls, resolved: ResolvedParameters) -> "ProcessParametersDTO":
        return cls.from_domain_model(resolved.row, fallback=resolved.fallback)
