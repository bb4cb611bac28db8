# precast_pricing/services/price_history_service.py
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from precast_pricing.db.enums import PriceTrend
from precast_pricing.models.piece_zone_price import PieceZonePrice
from precast_pricing.services.reference_data import load_piece, load_zone
from precast_pricing.services.temporal_resolution import (
    resolve_as_of,
    same_day_previous_month,
    to_date,
)


def trend_of(delta: Optional[Decimal]) -> PriceTrend:
    if delta is None or delta == 0:
        return PriceTrend.equal
    return PriceTrend.up if delta > 0 else PriceTrend.down


def _percent(delta: Optional[Decimal], previous: Optional[Decimal]) -> Optional[Decimal]:
    if delta is None or previous is None or previous == 0:
        return None
    return delta / previous * 100


@dataclass
class HistoryEntry:
    row: PieceZonePrice
    previous_price: Optional[Decimal]
    delta: Optional[Decimal]
    delta_percent: Optional[Decimal]
    trend: PriceTrend


@dataclass
class PriceComparison:
    piece_id: str
    zone_id: str
    as_of: date
    current_price: Optional[Decimal]
    previous_as_of: date
    previous_price: Optional[Decimal]
    previous_effective_date: Optional[date]
    delta: Optional[Decimal]
    delta_percent: Optional[Decimal]
    trend: PriceTrend


class PriceHistoryService:
    """
    Period-over-period view of the published piece price ledger.
    Piece prices are open-ended: the latest effective_date <= as_of wins.
    """

    def __init__(self, db: Session):
        self.db = db

    def resolve_price(self, piece_id: str, zone_id: str, as_of) -> Optional[PieceZonePrice]:
        as_of = to_date(as_of)
        rows = self.db.execute(
            select(PieceZonePrice).where(
                PieceZonePrice.piece_id == piece_id,
                PieceZonePrice.zone_id == zone_id,
                PieceZonePrice.effective_date <= as_of,
            )
        ).scalars()
        return resolve_as_of(rows, as_of)

    def get_history(
        self,
        piece_id: str,
        zone_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[HistoryEntry]:
        '''
        Published prices of a piece, newest first, each compared with the
        preceding row of the same zone. Deltas are computed over the full
        history before truncating to `limit`, so the oldest returned row still
        has its predecessor.
        '''
        load_piece(self.db, piece_id)
        if zone_id:
            load_zone(self.db, zone_id)

        stmt = select(PieceZonePrice).where(PieceZonePrice.piece_id == piece_id)
        if zone_id:
            stmt = stmt.where(PieceZonePrice.zone_id == zone_id)
        rows = list(
            self.db.execute(
                stmt.order_by(
                    PieceZonePrice.effective_date.desc(),
                    PieceZonePrice.created_at.desc(),
                    PieceZonePrice.zone_id,
                )
            ).scalars()
        )

        # 按 zone 分组，从旧到新比较相邻两行
        by_zone: Dict[str, List[PieceZonePrice]] = {}
        for row in reversed(rows):
            by_zone.setdefault(row.zone_id, []).append(row)

        annotated: Dict[str, HistoryEntry] = {}
        for zone_rows in by_zone.values():
            previous: Optional[PieceZonePrice] = None
            for row in zone_rows:
                if previous is None:
                    prev_price = delta = None
                else:
                    prev_price = previous.final_price
                    delta = row.final_price - prev_price
                annotated[row.id] = HistoryEntry(
                    row=row,
                    previous_price=prev_price,
                    delta=delta,
                    delta_percent=_percent(delta, prev_price),
                    trend=trend_of(delta),
                )
                previous = row

        entries = [annotated[row.id] for row in rows]
        if limit is not None and limit >= 0:
            entries = entries[:limit]
        return entries

    def compare(
        self,
        piece_id: str,
        zone_id: str,
        as_of,
        current_price: Optional[Decimal] = None,
    ) -> PriceComparison:
        '''
        Compare a current value with the price published one month earlier.

        :param current_price: value to compare (e.g. a fresh breakdown total);
                              defaults to the published price in force on as_of
        '''
        load_piece(self.db, piece_id)
        load_zone(self.db, zone_id)
        as_of = to_date(as_of)

        if current_price is None:
            current_row = self.resolve_price(piece_id, zone_id, as_of)
            current_price = current_row.final_price if current_row is not None else None
        else:
            current_price = Decimal(current_price)

        previous_as_of = same_day_previous_month(as_of)
        previous_row = self.resolve_price(piece_id, zone_id, previous_as_of)
        previous_price = previous_row.final_price if previous_row is not None else None

        delta = None
        if current_price is not None and previous_price is not None:
            delta = current_price - previous_price

        return PriceComparison(
            piece_id=piece_id,
            zone_id=zone_id,
            as_of=as_of,
            current_price=current_price,
            previous_as_of=previous_as_of,
            previous_price=previous_price,
            previous_effective_date=previous_row.effective_date if previous_row is not None else None,
            delta=delta,
            delta_percent=_percent(delta, previous_price),
            trend=trend_of(delta),
        )
