from typing import Any, Optional, Union
from uuid import uuid4
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy.orm import Session

from precast_pricing.models.audit_log import AuditLog
from precast_pricing.db.enums import AuditEntityType, AuditAction
from precast_pricing.logger import get_logger

logger = get_logger(__name__)


class AuditLogService:
    """
    Centralized service for recording all auditable actions.
    This service is the ONLY place where AuditLog records are created.
    Records join the caller's transaction: they commit or roll back with it.
    """

    def __init__(self, db: Session):
        self.db = db

    def serialize_audit_value(self, value) -> Any:
        if value is None:
            return None
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (int, float, str, bool)):
            return value
        if isinstance(value, dict):
            return {k: self.serialize_audit_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.serialize_audit_value(v) for v in value]
        return str(value)  # 兜底

    def _normalize_entity_type(self, entity_type: Union[str, AuditEntityType]) -> AuditEntityType:
        '''
        Accept an enum member, its value ("piece_zone_price") or its name ("PieceZonePrice").
        '''
        if isinstance(entity_type, AuditEntityType):
            return entity_type

        entity_type_str = str(entity_type).strip()
        for enum_member in AuditEntityType:
            if enum_member.value == entity_type_str.lower():
                return enum_member
            if enum_member.name.lower() == entity_type_str.lower():
                return enum_member

        raise ValueError(f"Unknown entity_type: {entity_type_str}. Valid values: {[e.value for e in AuditEntityType]}")

    def _record(
        self,
        *,
        zone_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        action: AuditAction,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> AuditLog:
        log = AuditLog(
            id=str(uuid4()),
            zone_id=zone_id,
            entity_type=self._normalize_entity_type(entity_type),
            entity_id=entity_id,
            action=action,
            changed_attribute=changed_attribute,
            before_value=self.serialize_audit_value(before_value),
            after_value=self.serialize_audit_value(after_value),
            operator_id=operator_id,
            timestamp=datetime.now(),
        )
        self.db.add(log)
        logger.debug(
            "audit %s %s:%s by %s", action.value, log.entity_type.value, entity_id, operator_id
        )
        return log

    def record_create(
        self,
        *,
        zone_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        operator_id: str,
        after_value: Any = None,
    ) -> None:
        '''
        创建操作的审计日志：published prices, formula lines, parameter rows, closures...

        :param zone_id: zone the entity belongs to, if any
        :param entity_type: AuditEntityType or its string form
        :param entity_id: UUID of the created entity
        :param operator_id: acting user
        :param after_value: optional snapshot of the created values
        '''
        self._record(
            zone_id=zone_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.create,
            changed_attribute="__all__",
            before_value=None,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_update(
        self,
        *,
        zone_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> None:
        '''
        更新操作的审计日志, one record per changed attribute.
        '''
        self._record(
            zone_id=zone_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.update,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_delete(
        self,
        *,
        zone_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        before_value: Any,
        operator_id: str,
    ) -> None:
        self._record(
            zone_id=zone_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.delete,
            changed_attribute="__all__",
            before_value=before_value,
            after_value=None,
            operator_id=operator_id,
        )

    def record_system_update(
        self,
        *,
        zone_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
    ) -> None:
        '''
        系统自动更新的审计日志, e.g. a material price window closed because a
        newer price superseded it.
        '''
        self._record(
            zone_id=zone_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.system,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id="SYSTEM",
        )
