# precast_pricing/services/price_publisher_service.py
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from precast_pricing.db.enums import AuditEntityType
from precast_pricing.db.upsert import upsert
from precast_pricing.errors import ValidationError, ErrorCode
from precast_pricing.logger import get_logger
from precast_pricing.models.material import Material
from precast_pricing.models.piece_zone_price import PieceZonePrice
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.cost_breakdown_service import CostBreakdown, CostBreakdownService
from precast_pricing.services.month_close_service import MonthCloseService
from precast_pricing.services.price_history_service import PriceHistoryService
from precast_pricing.services.price_line import PriceLine, SuppliedPrice, ComputedPrice
from precast_pricing.services.reference_data import load_piece, load_zone
from precast_pricing.services.temporal_resolution import to_date

logger = get_logger(__name__)


@dataclass
class PublishResult:
    price: PieceZonePrice
    created: bool
    breakdown: Optional[CostBreakdown] = None


class PricePublisherService:
    """
    Commits a supplied or computed price into the piece price ledger.

    One row per (piece, zone, effective_date): republishing the same date
    overwrites it through an atomic insert-or-update, a new date appends.
    """

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        cost_breakdown_service: CostBreakdownService,
        month_close_service: MonthCloseService,
        price_history_service: Optional[PriceHistoryService] = None,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.cost_breakdown_service = cost_breakdown_service
        self.month_close_service = month_close_service
        self.price_history_service = price_history_service or PriceHistoryService(db)

    def publish(
        self,
        *,
        piece_id: str,
        zone_id: str,
        effective_date,
        price_line: PriceLine,
        operator_id: str,
    ) -> PublishResult:
        '''
        Publish a price for (piece, zone, effective_date).

        :param price_line: SuppliedPrice to store a given amount, ComputedPrice to
                           store the calculator's total
        :raises NotFoundError: piece or zone does not exist
        :raises ValidationError: MISSING_MATERIAL_PRICES when a computed price has
                                 unresolved materials, INVALID_PRICE for negative prices
        :raises ConflictError: PERIOD_CLOSED when a month the price would be in force
                               (until the next published date) is closed
        '''
        load_piece(self.db, piece_id)
        load_zone(self.db, zone_id)
        effective_date = to_date(effective_date)
        self._assert_window_open(piece_id, zone_id, effective_date)

        breakdown = None
        if isinstance(price_line, SuppliedPrice):
            base_price = self._money(price_line.amount, "price")
        elif isinstance(price_line, ComputedPrice):
            breakdown = price_line.breakdown
            if breakdown is not None and (
                breakdown.piece_id != piece_id
                or breakdown.zone_id != zone_id
                or breakdown.as_of != effective_date
            ):
                raise ValidationError(
                    "Breakdown does not match the piece, zone and date being published",
                    code=ErrorCode.INVALID_PAYLOAD,
                    details={"piece_id": piece_id, "zone_id": zone_id, "effective_date": effective_date.isoformat()},
                )
            if breakdown is None:
                breakdown = self.cost_breakdown_service.calculate(
                    piece_id=piece_id, zone_id=zone_id, as_of=effective_date
                )
            self._assert_complete(breakdown)
            base_price = breakdown.total
        else:
            raise TypeError(f"Unsupported price line: {type(price_line).__name__}")

        adjustment = self._money(price_line.adjustment, "adjustment", allow_negative=True)
        if base_price < 0 or base_price + adjustment < 0:
            raise ValidationError(
                "Published price cannot be negative",
                code=ErrorCode.INVALID_PRICE,
                details={"base_price": str(base_price), "adjustment": str(adjustment)},
            )

        row, created = self._store(piece_id, zone_id, effective_date, base_price, adjustment, operator_id)
        logger.info(
            "Published piece %s zone %s %s: %s (%s)",
            piece_id, zone_id, effective_date.isoformat(), row.final_price,
            "created" if created else "overwritten",
        )
        return PublishResult(price=row, created=created, breakdown=breakdown)

    def copy_zone_prices(
        self,
        *,
        source_zone_id: str,
        target_zone_id: str,
        effective_date,
        adjustment_percentage=0,
        operator_id: str,
    ) -> List[PieceZonePrice]:
        '''
        Republish the prices in force in one zone into another, scaled by
        adjustment_percentage (10 means +10%).

        :raises ValidationError: source and target are the same zone
        :raises ConflictError: PERIOD_CLOSED in the target zone
        '''
        if source_zone_id == target_zone_id:
            raise ValidationError(
                "Source and target zone are the same",
                code=ErrorCode.INVALID_PAYLOAD,
                details={"zone_id": source_zone_id},
            )
        load_zone(self.db, source_zone_id)
        load_zone(self.db, target_zone_id)
        effective_date = to_date(effective_date)
        self.month_close_service.assert_open(target_zone_id, effective_date)
        factor = 1 + self._money(adjustment_percentage, "adjustment_percentage", allow_negative=True) / 100
        if factor < 0:
            raise ValidationError(
                "Adjustment percentage cannot be below -100",
                code=ErrorCode.INVALID_PRICE,
                details={"adjustment_percentage": str(adjustment_percentage)},
            )

        piece_ids = self.db.execute(
            select(PieceZonePrice.piece_id)
            .where(
                PieceZonePrice.zone_id == source_zone_id,
                PieceZonePrice.effective_date <= effective_date,
            )
            .distinct()
        ).scalars().all()

        copied = []
        for piece_id in sorted(piece_ids):
            source = self.price_history_service.resolve_price(piece_id, source_zone_id, effective_date)
            if source is None:
                continue
            price = (source.final_price * factor).quantize(Decimal("0.0001"))
            self._assert_window_open(piece_id, target_zone_id, effective_date)
            row, _ = self._store(piece_id, target_zone_id, effective_date, price, Decimal("0"), operator_id)
            copied.append(row)

        logger.info(
            "Copied %d prices from zone %s to %s at %s (%s%%)",
            len(copied), source_zone_id, target_zone_id, effective_date.isoformat(), adjustment_percentage,
        )
        return copied

    # ======================================================
    # 🔐 Internal helpers
    # ======================================================

    def _assert_complete(self, breakdown: CostBreakdown) -> None:
        if not breakdown.missing_prices:
            return
        names = dict(
            self.db.execute(
                select(Material.id, Material.name).where(Material.id.in_(breakdown.missing_prices))
            ).all()
        )
        raise ValidationError(
            "Cannot publish: some materials have no price on the effective date",
            code=ErrorCode.MISSING_MATERIAL_PRICES,
            details={
                "missing_prices": list(breakdown.missing_prices),
                "materials": [names.get(m, m) for m in breakdown.missing_prices],
            },
        )

    def _assert_window_open(self, piece_id: str, zone_id: str, effective_date: date) -> None:
        '''
        Piece prices are open-ended: a row is in force until the next published
        date, so every month up to that date must still be open.
        '''
        next_date = self.db.execute(
            select(PieceZonePrice.effective_date)
            .where(
                PieceZonePrice.piece_id == piece_id,
                PieceZonePrice.zone_id == zone_id,
                PieceZonePrice.effective_date > effective_date,
            )
            .order_by(PieceZonePrice.effective_date)
            .limit(1)
        ).scalar()
        window_end = next_date - timedelta(days=1) if next_date is not None else None
        self.month_close_service.assert_range_open(zone_id, effective_date, window_end)

    def _store(self, piece_id, zone_id, effective_date, base_price, adjustment, operator_id):
        existing = self.db.execute(
            select(PieceZonePrice).where(
                PieceZonePrice.piece_id == piece_id,
                PieceZonePrice.zone_id == zone_id,
                PieceZonePrice.effective_date == effective_date,
            )
        ).scalars().first()
        before = existing.final_price if existing is not None else None

        row = upsert(
            self.db,
            PieceZonePrice,
            values={
                "id": existing.id if existing is not None else str(uuid4()),
                "piece_id": piece_id,
                "zone_id": zone_id,
                "effective_date": effective_date,
                "base_price": base_price,
                "adjustment": adjustment,
                "created_by": operator_id,
            },
            conflict_keys=("piece_id", "zone_id", "effective_date"),
            update_fields=("base_price", "adjustment", "created_by"),
        )

        if before is None:
            self.audit_log_service.record_create(
                zone_id=zone_id,
                entity_type=AuditEntityType.PieceZonePrice,
                entity_id=row.id,
                operator_id=operator_id,
                after_value={
                    "piece_id": piece_id,
                    "effective_date": effective_date,
                    "base_price": row.base_price,
                    "adjustment": row.adjustment,
                },
            )
        else:
            self.audit_log_service.record_update(
                zone_id=zone_id,
                entity_type=AuditEntityType.PieceZonePrice,
                entity_id=row.id,
                changed_attribute="final_price",
                before_value=before,
                after_value=row.final_price,
                operator_id=operator_id,
            )
        return row, before is None

    @staticmethod
    def _money(value, name: str, allow_negative: bool = False) -> Decimal:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{name} is not a number: {value!r}", code=ErrorCode.INVALID_PRICE)
        if not amount.is_finite() or (amount < 0 and not allow_negative):
            raise ValidationError(
                f"{name} must be a non-negative number",
                code=ErrorCode.INVALID_PRICE,
                details={name: str(value)},
            )
        return amount
