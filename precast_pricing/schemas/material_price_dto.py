from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from precast_pricing.models.material_zone_price import MaterialZonePrice
from precast_pricing.services.material_price_service import ImportSummary


class MaterialZonePriceDTO(BaseModel):
    id: str
    material_id: str
    zone_id: str
    price: float
    valid_from: date
    valid_until: Optional[date] = None
    is_active: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain_model(cls, row: MaterialZonePrice) -> "MaterialZonePriceDTO":
        return cls(
            id=row.id,
            material_id=row.material_id,
            zone_id=row.zone_id,
            price=float(row.price),
            valid_from=row.valid_from,
            valid_until=row.valid_until,
            is_active=row.is_active,
            created_by=row.created_by,
            created_at=row.created_at,
        )


class ImportRowDTO(BaseModel):
    row: int
    material: Optional[str] = None
    ok: bool
    message: str = ""
    price: Optional[float] = None


class ImportSummaryDTO(BaseModel):
    zone_id: str
    month_date: date
    applied: bool
    total_rows: int
    ok_count: int
    error_count: int
    rows: List[ImportRowDTO]

    @classmethod
    def from_domain_model(cls, summary: ImportSummary) -> "ImportSummaryDTO":
        return cls(
            zone_id=summary.zone_id,
            month_date=summary.month_date,
            applied=summary.applied,
            total_rows=summary.total_rows,
            ok_count=summary.ok_count,
            error_count=summary.error_count,
            rows=[
                ImportRowDTO(
                    row=r.row,
                    material=r.material,
                    ok=r.ok,
                    message=r.message,
                    price=float(r.price) if r.price is not None else None,
                )
                for r in summary.rows
            ],
        )
