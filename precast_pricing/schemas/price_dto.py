from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from precast_pricing.models.piece_zone_price import PieceZonePrice
from precast_pricing.services.price_history_service import HistoryEntry


class PieceZonePriceDTO(BaseModel):
    id: str
    piece_id: str
    zone_id: str
    effective_date: date
    base_price: float
    adjustment: float
    final_price: float
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain_model(cls, price: PieceZonePrice) -> "PieceZonePriceDTO":
        return cls(
            id=price.id,
            piece_id=price.piece_id,
            zone_id=price.zone_id,
            effective_date=price.effective_date,
            base_price=float(price.base_price or 0),
            adjustment=float(price.adjustment or 0),
            final_price=float(price.final_price),
            created_by=price.created_by,
            created_at=price.created_at,
            updated_at=price.updated_at,
        )


class PriceHistoryEntryDTO(PieceZonePriceDTO):
    previous_price: Optional[float] = None
    delta: Optional[float] = None
    delta_percent: Optional[float] = None
    trend: str

    @classmethod
    def from_domain_model(cls, entry: HistoryEntry) -> "PriceHistoryEntryDTO":
        base = PieceZonePriceDTO.from_domain_model(entry.row)
        return cls(
            **base.model_dump(),
            previous_price=float(entry.previous_price) if entry.previous_price is not None else None,
            delta=float(entry.delta) if entry.delta is not None else None,
            delta_percent=float(entry.delta_percent) if entry.delta_percent is not None else None,
            trend=entry.trend.value,
        )
