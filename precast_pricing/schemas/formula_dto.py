# precast_pricing/schemas/formula_dto.py
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from precast_pricing.models.formula_line import FormulaLine


class FormulaLineInput(BaseModel):
    '''
    Typed BOM line payload. Only types are enforced here; business rules
    (qty > 0, waste >= 0, material exists) belong to FormulaService.validate_formula
    so they come back as errors/warnings instead of exceptions.
    '''
    model_config = ConfigDict(frozen=True, extra="forbid")

    material_id: str
    quantity_per_unit: Decimal
    waste_factor: Decimal = Decimal("0")
    notes: Optional[str] = None


class FormulaPayload(BaseModel):
    lines: List[FormulaLineInput]


class FormulaLineDTO(BaseModel):
    id: str
    piece_id: str
    material_id: str
    material_code: Optional[str] = None
    material_name: Optional[str] = None
    material_unit: Optional[str] = None
    material_category: Optional[str] = None
    quantity_per_unit: float
    waste_factor: float
    notes: Optional[str] = None

    @classmethod
    def from_domain_model(cls, line: FormulaLine) -> "FormulaLineDTO":
        material = line.material
        return cls(
            id=line.id,
            piece_id=line.piece_id,
            material_id=line.material_id,
            material_code=material.code if material else None,
            material_name=material.name if material else None,
            material_unit=material.unit if material else None,
            material_category=material.category if material else None,
            quantity_per_unit=float(line.quantity_per_unit),
            waste_factor=float(line.waste_factor or 0),
            notes=line.notes,
        )
