# precast_pricing/services/month_close_service.py
from datetime import date, datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from precast_pricing.db.enums import AuditEntityType
from precast_pricing.errors import ConflictError, ValidationError, ErrorCode
from precast_pricing.logger import get_logger
from precast_pricing.models.month_closure import MonthClosure
from precast_pricing.models.process_parameters import ProcessParameters
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.reference_data import load_zone
from precast_pricing.services.temporal_resolution import month_start, to_date

logger = get_logger(__name__)


class MonthCloseService:
    """
    Freezes a (zone, month) period against further parameter and price edits.

    Closing is a guard, not a state change of the ledger: nothing is deleted and
    as-of lookups ignore closures entirely.
    """

    def __init__(self, db: Session, audit_log_service: AuditLogService):
        self.db = db
        self.audit_log_service = audit_log_service

    def close_month(
        self,
        *,
        zone_id: str,
        month_date,
        operator_id: str,
    ) -> MonthClosure:
        '''
        Close a zone/month period.

        :raises NotFoundError: zone does not exist
        :raises ConflictError: PERIOD_ALREADY_CLOSED
        :raises ValidationError: PROCESS_PARAMETERS_MISSING when the period has no parameters row
        '''
        load_zone(self.db, zone_id)
        month = month_start(to_date(month_date))

        if self._find(zone_id, month) is not None:
            raise ConflictError(
                f"Period {month:%Y-%m} is already closed for zone {zone_id}",
                code=ErrorCode.PERIOD_ALREADY_CLOSED,
                details={"zone_id": zone_id, "month_date": month.isoformat()},
            )

        has_parameters = self.db.execute(
            select(ProcessParameters.id).where(
                ProcessParameters.zone_id == zone_id,
                ProcessParameters.month_date == month,
            )
        ).first()
        if has_parameters is None:
            raise ValidationError(
                f"Process parameters for {month:%Y-%m} do not exist; the period cannot be closed",
                code=ErrorCode.PROCESS_PARAMETERS_MISSING,
                details={"zone_id": zone_id, "month_date": month.isoformat()},
            )

        closure = MonthClosure(
            id=str(uuid4()),
            zone_id=zone_id,
            month_date=month,
            closed_by=operator_id,
            closed_at=datetime.now(),
        )
        try:
            # 唯一约束兜底并发关账
            with self.db.begin_nested():
                self.db.add(closure)
                self.db.flush()
        except IntegrityError:
            raise ConflictError(
                f"Period {month:%Y-%m} is already closed for zone {zone_id}",
                code=ErrorCode.PERIOD_ALREADY_CLOSED,
                details={"zone_id": zone_id, "month_date": month.isoformat()},
            )

        self.audit_log_service.record_create(
            zone_id=zone_id,
            entity_type=AuditEntityType.MonthClosure,
            entity_id=closure.id,
            operator_id=operator_id,
            after_value={"month_date": month},
        )
        logger.info("Closed period %s for zone %s by %s", month.isoformat(), zone_id, operator_id)
        return closure

    def is_closed(self, zone_id: str, day) -> bool:
        return self._find(zone_id, month_start(to_date(day))) is not None

    def assert_open(self, zone_id: str, day) -> None:
        '''
        :raises ConflictError: PERIOD_CLOSED when the month containing `day` is closed
        '''
        self.assert_range_open(zone_id, day, day)

    def assert_range_open(self, zone_id: str, start, end=None) -> None:
        '''
        Guard for writes whose effect spans several months, e.g. an open-ended
        price row starting before a closed month.

        :param end: last affected day (inclusive); None means open-ended
        :raises ConflictError: PERIOD_CLOSED on the first closed month in [start, end]
        '''
        stmt = select(MonthClosure).where(
            MonthClosure.zone_id == zone_id,
            MonthClosure.month_date >= month_start(to_date(start)),
        )
        if end is not None:
            stmt = stmt.where(MonthClosure.month_date <= month_start(to_date(end)))
        closure = self.db.execute(stmt.order_by(MonthClosure.month_date)).scalars().first()
        if closure is not None:
            month = closure.month_date
            raise ConflictError(
                f"Period {month:%Y-%m} is closed for zone {zone_id}",
                code=ErrorCode.PERIOD_CLOSED,
                details={"zone_id": zone_id, "month_date": month.isoformat()},
            )

    def list_closures(self, zone_id: Optional[str] = None) -> List[MonthClosure]:
        stmt = select(MonthClosure)
        if zone_id:
            stmt = stmt.where(MonthClosure.zone_id == zone_id)
        return list(
            self.db.execute(stmt.order_by(MonthClosure.month_date.desc())).scalars()
        )

    def _find(self, zone_id: str, month: date) -> Optional[MonthClosure]:
        return self.db.execute(
            select(MonthClosure).where(
                MonthClosure.zone_id == zone_id,
                MonthClosure.month_date == month,
            )
        ).scalars().first()
