# precast_pricing/services/material_price_service.py
import io
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from operator import attrgetter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from precast_pricing.db.enums import AuditEntityType
from precast_pricing.errors import ValidationError, NotFoundError, ErrorCode
from precast_pricing.logger import get_logger
from precast_pricing.models.material import Material
from precast_pricing.models.material_zone_price import MaterialZonePrice
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.month_close_service import MonthCloseService
from precast_pricing.services.query_spec import MaterialPriceQuery, build_material_query
from precast_pricing.services.reference_data import load_material, load_zone
from precast_pricing.services.temporal_resolution import (
    last_day_of_previous_month,
    month_start,
    resolve_as_of,
    to_date,
)

logger = get_logger(__name__)

CSV_COLUMNS = [
    "material_id",
    "material_code",
    "material_name",
    "unit",
    "category",
    "price",
    "valid_from",
    "valid_until",
]


@dataclass
class ImportRowResult:
    row: int
    material: Optional[str]
    ok: bool
    message: str = ""
    price: Optional[Decimal] = None


@dataclass
class ImportSummary:
    zone_id: str
    month_date: date
    applied: bool
    total_rows: int
    ok_count: int
    error_count: int
    rows: List[ImportRowResult] = field(default_factory=list)


def _price_effective(row: MaterialZonePrice) -> date:
    return row.valid_from


def _price_valid_until(row: MaterialZonePrice) -> Optional[date]:
    return row.valid_until


class MaterialPriceService:
    """
    Material price ledger, per (material, zone), versioned by validity window.

    Rows are never physically deleted: setting a new price closes the window
    of the row it supersedes, and deactivation flips is_active.
    """

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        month_close_service: MonthCloseService,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.month_close_service = month_close_service

    # ======================================================
    # 🔍 Resolution
    # ======================================================

    def resolve_price(self, material_id: str, zone_id: str, as_of) -> Optional[MaterialZonePrice]:
        '''Price row in force on as_of, None when no row applies (soft gap).'''
        as_of = to_date(as_of)
        return resolve_as_of(
            self._candidates([material_id], zone_id, as_of),
            as_of,
            effective=_price_effective,
            valid_until=_price_valid_until,
        )

    def resolve_prices(
        self,
        material_ids: Iterable[str],
        zone_id: str,
        as_of,
    ) -> Dict[str, Optional[MaterialZonePrice]]:
        '''Bulk variant: one query for every material of a formula.'''
        as_of = to_date(as_of)
        ids = list(dict.fromkeys(material_ids))
        by_material: Dict[str, List[MaterialZonePrice]] = {m: [] for m in ids}
        for row in self._candidates(ids, zone_id, as_of):
            by_material[row.material_id].append(row)
        return {
            material_id: resolve_as_of(
                rows, as_of, effective=_price_effective, valid_until=_price_valid_until
            )
            for material_id, rows in by_material.items()
        }

    def _candidates(self, material_ids: Sequence[str], zone_id: str, as_of: date) -> List[MaterialZonePrice]:
        if not material_ids:
            return []
        return list(
            self.db.execute(
                select(MaterialZonePrice).where(
                    MaterialZonePrice.material_id.in_(material_ids),
                    MaterialZonePrice.zone_id == zone_id,
                    MaterialZonePrice.is_active.is_(True),
                    MaterialZonePrice.valid_from <= as_of,
                )
            ).scalars()
        )

    # ======================================================
    # ✍️ Price setting
    # ======================================================

    def set_price(
        self,
        *,
        material_id: str,
        zone_id: str,
        price,
        valid_from,
        operator_id: str,
    ) -> MaterialZonePrice:
        '''
        Publish a new material price starting on valid_from.

        The active row covering valid_from is superseded: its valid_until becomes
        the day before, or it is deactivated when it starts the same day.
        A later row that already exists bounds the new row's window.

        :raises ValidationError: INVALID_PRICE for negative / non numeric prices
        :raises ConflictError: PERIOD_CLOSED when any month the new row would be
                               valid in is closed
        '''
        load_material(self.db, material_id)
        load_zone(self.db, zone_id)
        price = self._parse_price(price)
        valid_from = to_date(valid_from)

        row = self._apply_price(material_id, zone_id, price, valid_from, operator_id)
        logger.info(
            "Material %s price in zone %s set to %s from %s", material_id, zone_id, price, valid_from
        )
        return row

    def _apply_price(
        self,
        material_id: str,
        zone_id: str,
        price: Decimal,
        valid_from: date,
        operator_id: str,
    ) -> MaterialZonePrice:
        active_rows = list(
            self.db.execute(
                select(MaterialZonePrice).where(
                    MaterialZonePrice.material_id == material_id,
                    MaterialZonePrice.zone_id == zone_id,
                    MaterialZonePrice.is_active.is_(True),
                )
            ).scalars()
        )

        # 已存在更晚的价格时，新价格的有效期截止到它的前一天
        later_starts = [r.valid_from for r in active_rows if r.valid_from > valid_from]
        valid_until = min(later_starts) - timedelta(days=1) if later_starts else None

        # 新行生效的每一天都会改变查询结果，区间内不能有已关账月份
        self.month_close_service.assert_range_open(zone_id, valid_from, valid_until)

        for old in active_rows:
            covers = old.valid_from <= valid_from and (
                old.valid_until is None or old.valid_until >= valid_from
            )
            if not covers:
                continue
            if old.valid_from == valid_from:
                old.is_active = False
                changed, before, after = "is_active", True, False
            else:
                before = old.valid_until
                old.valid_until = valid_from - timedelta(days=1)
                changed, after = "valid_until", old.valid_until
            self.audit_log_service.record_system_update(
                zone_id=zone_id,
                entity_type=AuditEntityType.MaterialZonePrice,
                entity_id=old.id,
                changed_attribute=changed,
                before_value=before,
                after_value=after,
            )

        row = MaterialZonePrice(
            id=str(uuid4()),
            material_id=material_id,
            zone_id=zone_id,
            price=price,
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=True,
            created_by=operator_id,
        )
        self.db.add(row)
        self.db.flush()

        self.audit_log_service.record_create(
            zone_id=zone_id,
            entity_type=AuditEntityType.MaterialZonePrice,
            entity_id=row.id,
            operator_id=operator_id,
            after_value={"material_id": material_id, "price": price, "valid_from": valid_from},
        )
        return row

    def deactivate_price(self, *, price_id: str, operator_id: str) -> MaterialZonePrice:
        row = self.db.get(MaterialZonePrice, price_id)
        if row is None:
            raise NotFoundError(f"Material price not found: {price_id}", details={"price_id": price_id})
        if row.is_active:
            self.month_close_service.assert_range_open(row.zone_id, row.valid_from, row.valid_until)
            row.is_active = False
            self.audit_log_service.record_update(
                zone_id=row.zone_id,
                entity_type=AuditEntityType.MaterialZonePrice,
                entity_id=row.id,
                changed_attribute="is_active",
                before_value=True,
                after_value=False,
                operator_id=operator_id,
            )
            self.db.flush()
        return row

    # ======================================================
    # 📖 Listings
    # ======================================================

    def get_price_history(self, material_id: str, zone_id: Optional[str] = None) -> List[MaterialZonePrice]:
        load_material(self.db, material_id)
        stmt = select(MaterialZonePrice).where(MaterialZonePrice.material_id == material_id)
        if zone_id:
            stmt = stmt.where(MaterialZonePrice.zone_id == zone_id)
        return list(
            self.db.execute(
                stmt.order_by(
                    MaterialZonePrice.zone_id,
                    MaterialZonePrice.valid_from.desc(),
                    MaterialZonePrice.created_at.desc(),
                )
            ).scalars()
        )

    def list_current_prices(self, spec: MaterialPriceQuery) -> List[Dict[str, Any]]:
        '''
        Current price of every material matching the query, with the price in
        force at the end of the previous month and the relative change.
        '''
        load_zone(self.db, spec.zone_id)
        rows = self.db.execute(build_material_query(spec)).all()

        materials: Dict[str, Material] = {}
        candidates: Dict[str, List[MaterialZonePrice]] = {}
        for material, price_row in rows:
            materials[material.id] = material
            bucket = candidates.setdefault(material.id, [])
            if price_row is not None:
                bucket.append(price_row)

        previous = self.resolve_prices(
            materials.keys(), spec.zone_id, last_day_of_previous_month(spec.as_of)
        )

        result = []
        for material_id, material in materials.items():
            current = resolve_as_of(
                candidates[material_id],
                spec.as_of,
                effective=_price_effective,
                valid_until=_price_valid_until,
            )
            prev = previous.get(material_id)
            delta_percent = None
            if current is not None and prev is not None and prev.price:
                delta_percent = (Decimal(current.price) / Decimal(prev.price) - 1) * 100
            result.append({
                "material_id": material.id,
                "material_code": material.code,
                "material_name": material.name,
                "unit": material.unit,
                "category": material.category,
                "price_id": current.id if current else None,
                "price": current.price if current else None,
                "valid_from": current.valid_from if current else None,
                "valid_until": current.valid_until if current else None,
                "previous_price": prev.price if prev else None,
                "delta_percent": delta_percent,
            })
        return result

    # ======================================================
    # 📥 CSV import / 📤 export
    # ======================================================

    def parse_price_csv(self, csv_text: str) -> List[Dict[str, Any]]:
        '''
        Read CSV text into row dicts. Requires a price column and one of
        material_code / material_id.
        '''
        try:
            df = pd.read_csv(io.StringIO(csv_text), dtype=str, keep_default_na=False)
        except Exception as e:
            raise ValidationError(f"Failed to read CSV: {e}", code=ErrorCode.INVALID_PAYLOAD)

        df.columns = [str(c).strip().lower() for c in df.columns]
        if "price" not in df.columns or not ({"material_code", "material_id"} & set(df.columns)):
            raise ValidationError(
                "CSV must contain a price column and a material_code or material_id column",
                code=ErrorCode.INVALID_PAYLOAD,
                details={"columns": list(df.columns)},
            )
        return df.to_dict(orient="records")

    def import_prices(
        self,
        *,
        zone_id: str,
        month_date,
        rows: Sequence[Mapping[str, Any]],
        operator_id: str,
    ) -> ImportSummary:
        '''
        Apply a batch of prices for one (zone, month) as a single unit.

        Every row is validated first. If any row fails nothing is written and the
        summary comes back with applied=False. Otherwise all prices are applied
        inside one SAVEPOINT, valid from the first day of the month.
        '''
        load_zone(self.db, zone_id)
        month = month_start(to_date(month_date))
        self.month_close_service.assert_open(zone_id, month)

        codes = {str(r.get("material_code")).strip() for r in rows if r.get("material_code")}
        ids = {str(r.get("material_id")).strip() for r in rows if r.get("material_id")}
        known: Dict[str, Material] = {}
        if codes or ids:
            for m in self.db.execute(
                select(Material).where(Material.code.in_(sorted(codes)) | Material.id.in_(sorted(ids)))
            ).scalars():
                known[m.code] = m
                known[m.id] = m

        results: List[ImportRowResult] = []
        to_apply: Dict[str, Decimal] = {}
        for index, raw in enumerate(rows, start=1):
            key = str(raw.get("material_id") or raw.get("material_code") or "").strip()
            material = known.get(key)
            if not key:
                results.append(ImportRowResult(row=index, material=None, ok=False, message="material_code or material_id is required"))
                continue
            if material is None:
                results.append(ImportRowResult(row=index, material=key, ok=False, message=f"Material {key} does not exist"))
                continue
            try:
                price = self._parse_price(raw.get("price"))
            except ValidationError as e:
                results.append(ImportRowResult(row=index, material=key, ok=False, message=e.message))
                continue
            if material.id in to_apply:
                results.append(ImportRowResult(row=index, material=key, ok=False, message=f"Material {key} appears more than once"))
                continue
            to_apply[material.id] = price
            results.append(ImportRowResult(row=index, material=key, ok=True, price=price))

        error_count = sum(1 for r in results if not r.ok)
        summary = ImportSummary(
            zone_id=zone_id,
            month_date=month,
            applied=False,
            total_rows=len(results),
            ok_count=len(results) - error_count,
            error_count=error_count,
            rows=results,
        )
        if error_count or not to_apply:
            logger.warning(
                "Price import for zone %s %s rejected: %d of %d rows failed",
                zone_id, month.isoformat(), error_count, len(results),
            )
            return summary

        # 全部成功才落库，SAVEPOINT 保证要么全写要么全不写
        with self.db.begin_nested():
            for material_id, price in to_apply.items():
                self._apply_price(material_id, zone_id, price, month, operator_id)
        summary.applied = True
        logger.info("Imported %d material prices for zone %s %s", len(to_apply), zone_id, month.isoformat())
        return summary

    def export_prices_csv(self, zone_id: str, as_of) -> str:
        as_of = to_date(as_of)
        rows = self.list_current_prices(MaterialPriceQuery(zone_id=zone_id, as_of=as_of))
        df = pd.DataFrame(
            [{c: r.get(c) for c in CSV_COLUMNS} for r in rows if r["price"] is not None],
            columns=CSV_COLUMNS,
        )
        return df.to_csv(index=False)

    # ======================================================
    # 🔐 Internal helpers
    # ======================================================

    @staticmethod
    def _parse_price(value) -> Decimal:
        try:
            price = Decimal(str(value).strip())
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"Invalid price: {value!r}", code=ErrorCode.INVALID_PRICE)
        if not price.is_finite() or price < 0:
            raise ValidationError(f"Price must be a non-negative number: {value!r}", code=ErrorCode.INVALID_PRICE)
        return price
