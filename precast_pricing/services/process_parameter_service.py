# precast_pricing/services/process_parameter_service.py
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from precast_pricing.db.enums import AuditEntityType
from precast_pricing.db.upsert import upsert
from precast_pricing.errors import ValidationError, NotFoundError, ErrorCode
from precast_pricing.logger import get_logger
from precast_pricing.models.process_parameters import ProcessParameters, PARAMETER_FIELDS
from precast_pricing.models.zone import Zone
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.month_close_service import MonthCloseService
from precast_pricing.services.reference_data import load_zone
from precast_pricing.services.temporal_resolution import (
    month_start,
    month_end,
    last_day_of_previous_month,
    previous_month,
    resolve_as_of,
    to_date,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedParameters:
    row: ProcessParameters
    fallback: bool

    @property
    def month_date(self) -> date:
        return self.row.month_date


def _month_valid_until(row: ProcessParameters) -> date:
    # 每行只在自己的自然月内有效
    return month_end(row.month_date)


class ProcessParameterService:
    """
    Zone/month process parameters: lookup with previous-month fallback,
    atomic upsert, copy and cross-zone comparison.
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
    # 🔍 Lookup
    # ======================================================

    def resolve_for_date(self, zone_id: str, as_of) -> Optional[ResolvedParameters]:
        '''
        Parameters for the month containing as_of, falling back to the
        immediately preceding month. None when neither exists.
        '''
        as_of = to_date(as_of)
        rows = self._rows_between(zone_id, previous_month(as_of), month_start(as_of))

        current = resolve_as_of(
            rows,
            as_of,
            effective=lambda r: r.month_date,
            valid_until=_month_valid_until,
        )
        if current is not None:
            return ResolvedParameters(row=current, fallback=False)

        fallback = resolve_as_of(
            rows,
            last_day_of_previous_month(as_of),
            effective=lambda r: r.month_date,
            valid_until=_month_valid_until,
        )
        if fallback is not None:
            logger.info(
                "Process parameters for zone %s %s missing, using %s",
                zone_id, month_start(as_of).isoformat(), fallback.month_date.isoformat(),
            )
            return ResolvedParameters(row=fallback, fallback=True)
        return None

    def get_parameters(self, zone_id: str, month_date) -> ResolvedParameters:
        '''
        :raises NotFoundError: zone unknown, or neither the month nor the previous month has parameters
        '''
        load_zone(self.db, zone_id)
        month = month_start(to_date(month_date))
        resolved = self.resolve_for_date(zone_id, month)
        if resolved is None:
            raise NotFoundError(
                f"No process parameters for zone {zone_id} in {month:%Y-%m} or the previous month",
                details={"zone_id": zone_id, "month_date": month.isoformat()},
            )
        return resolved

    def _rows_between(self, zone_id: str, first: date, last: date) -> List[ProcessParameters]:
        return list(
            self.db.execute(
                select(ProcessParameters).where(
                    ProcessParameters.zone_id == zone_id,
                    ProcessParameters.month_date >= first,
                    ProcessParameters.month_date <= last,
                )
            ).scalars()
        )

    def _exact(self, zone_id: str, month: date) -> Optional[ProcessParameters]:
        return self.db.execute(
            select(ProcessParameters).where(
                ProcessParameters.zone_id == zone_id,
                ProcessParameters.month_date == month,
            )
        ).scalars().first()

    # ======================================================
    # ✍️ Write
    # ======================================================

    def upsert_parameters(
        self,
        *,
        zone_id: str,
        month_date,
        fields: Mapping[str, Any],
        operator_id: str,
    ) -> ProcessParameters:
        '''
        Insert or update the parameters of one (zone, month).
        Fields not supplied keep their stored value (or 0 on insert).

        :raises ValidationError: INVALID_PARAMETERS for unknown, negative or non numeric fields
        :raises ConflictError: PERIOD_CLOSED
        '''
        load_zone(self.db, zone_id)
        month = month_start(to_date(month_date))
        parsed = self._parse_fields(fields)
        self.month_close_service.assert_open(zone_id, month)

        existing = self._exact(zone_id, month)
        before = existing.values() if existing is not None else None

        values: Dict[str, Any] = {f: Decimal("0") for f in PARAMETER_FIELDS}
        if before:
            values.update(before)
        values.update(parsed)

        row = upsert(
            self.db,
            ProcessParameters,
            values={
                "id": existing.id if existing is not None else str(uuid4()),
                "zone_id": zone_id,
                "month_date": month,
                **values,
            },
            conflict_keys=("zone_id", "month_date"),
            update_fields=PARAMETER_FIELDS,
        )

        if before is None:
            self.audit_log_service.record_create(
                zone_id=zone_id,
                entity_type=AuditEntityType.ProcessParameters,
                entity_id=row.id,
                operator_id=operator_id,
                after_value={"month_date": month, **row.values()},
            )
        else:
            for f in PARAMETER_FIELDS:
                if Decimal(before[f]) != Decimal(row.values()[f]):
                    self.audit_log_service.record_update(
                        zone_id=zone_id,
                        entity_type=AuditEntityType.ProcessParameters,
                        entity_id=row.id,
                        changed_attribute=f,
                        before_value=before[f],
                        after_value=row.values()[f],
                        operator_id=operator_id,
                    )

        logger.info("Process parameters for zone %s %s saved", zone_id, month.isoformat())
        return row

    def copy_from_previous_month(
        self,
        *,
        zone_id: str,
        target_month,
        operator_id: str,
    ) -> ProcessParameters:
        '''
        Copy the previous month's parameters into target_month.

        :raises NotFoundError: previous month has no parameters
        '''
        load_zone(self.db, zone_id)
        month = month_start(to_date(target_month))
        source = self._exact(zone_id, previous_month(month))
        if source is None:
            raise NotFoundError(
                f"No process parameters for zone {zone_id} in {previous_month(month):%Y-%m}",
                details={"zone_id": zone_id, "month_date": previous_month(month).isoformat()},
            )
        return self.upsert_parameters(
            zone_id=zone_id,
            month_date=month,
            fields=source.values(),
            operator_id=operator_id,
        )

    # ======================================================
    # 📊 Comparison
    # ======================================================

    def compare_zones(self, month_date) -> List[Dict[str, Any]]:
        '''
        Per active zone: the month's parameters, the previous month's, and the
        percent change of each field. Missing months are reported as None.
        '''
        month = month_start(to_date(month_date))
        prev = previous_month(month)

        zones = list(
            self.db.execute(
                select(Zone).where(Zone.is_active.is_(True)).order_by(Zone.display_order, Zone.name)
            ).scalars()
        )
        rows = self.db.execute(
            select(ProcessParameters).where(ProcessParameters.month_date.in_([month, prev]))
        ).scalars()
        by_key = {(r.zone_id, r.month_date): r for r in rows}

        result = []
        for zone in zones:
            current = by_key.get((zone.id, month))
            previous = by_key.get((zone.id, prev))
            deltas: Dict[str, Optional[Decimal]] = {}
            for f in PARAMETER_FIELDS:
                deltas[f] = None
                if current is not None and previous is not None:
                    old = Decimal(getattr(previous, f) or 0)
                    if old != 0:
                        deltas[f] = (Decimal(getattr(current, f) or 0) / old - 1) * 100
            result.append({
                "zone_id": zone.id,
                "zone_code": zone.code,
                "zone_name": zone.name,
                "current": current.values() if current is not None else None,
                "previous": previous.values() if previous is not None else None,
                "delta_percent": deltas,
            })
        return result

    # ======================================================
    # 🔐 Internal helpers
    # ======================================================

    @staticmethod
    def _parse_fields(fields: Mapping[str, Any]) -> Dict[str, Decimal]:
        unknown = [k for k in fields if k not in PARAMETER_FIELDS]
        if unknown:
            raise ValidationError(
                f"Unknown parameter fields: {', '.join(sorted(unknown))}",
                code=ErrorCode.INVALID_PARAMETERS,
                details={"fields": sorted(unknown)},
            )

        parsed: Dict[str, Decimal] = {}
        errors: Dict[str, str] = {}
        for key, raw in fields.items():
            if raw is None:
                continue
            try:
                value = Decimal(str(raw))
            except (InvalidOperation, ValueError):
                errors[key] = f"not a number: {raw!r}"
                continue
            if not value.is_finite() or value < 0:
                errors[key] = "must be a non-negative number"
                continue
            parsed[key] = value

        if errors:
            raise ValidationError(
                "Invalid process parameters",
                code=ErrorCode.INVALID_PARAMETERS,
                details={"fields": errors},
            )
        return parsed
