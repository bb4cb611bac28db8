# precast_pricing/services/system_config_service.py
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from precast_pricing.config import PricingPolicy, merge_with_defaults, load_settings
from precast_pricing.db.enums import AuditEntityType
from precast_pricing.errors import ValidationError, ErrorCode
from precast_pricing.logger import get_logger
from precast_pricing.models.system_config import SystemConfig
from precast_pricing.services.audit_log_service import AuditLogService

logger = get_logger(__name__)

PRICING_KEY = "pricing"


class SystemConfigService:
    """
    Reads and writes stored configuration overrides.
    The effective policy is always merge_with_defaults(stored, defaults).
    """

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        defaults: Optional[PricingPolicy] = None,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.defaults = defaults if defaults is not None else load_settings().pricing_defaults

    def get_pricing_policy(self) -> PricingPolicy:
        row = self.db.get(SystemConfig, PRICING_KEY)
        return merge_with_defaults(row.value if row is not None else None, self.defaults)

    def update_pricing_policy(
        self,
        *,
        overrides: Mapping[str, Any],
        operator_id: str,
    ) -> PricingPolicy:
        '''
        Store overrides for the pricing policy and return the effective policy.

        :raises ValidationError: INVALID_PAYLOAD for unknown keys or values of the wrong type
        '''
        unknown = sorted(k for k in overrides if k not in PricingPolicy.model_fields)
        if unknown:
            raise ValidationError(
                f"Unknown pricing policy keys: {', '.join(unknown)}",
                code=ErrorCode.INVALID_PAYLOAD,
                details={"keys": unknown},
            )

        row = self.db.get(SystemConfig, PRICING_KEY)
        before = dict(row.value) if row is not None else {}
        stored = {**before, **{k: v for k, v in overrides.items() if v is not None}}

        try:
            policy = merge_with_defaults(stored, self.defaults)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid pricing policy",
                code=ErrorCode.INVALID_PAYLOAD,
                details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
            )

        if row is None:
            row = SystemConfig(key=PRICING_KEY, value=stored)
            self.db.add(row)
        else:
            # JSON 列整体替换，避免原地修改不被追踪
            row.value = stored
        self.db.flush()

        self.audit_log_service.record_update(
            zone_id=None,
            entity_type=AuditEntityType.SystemConfig,
            entity_id=PRICING_KEY,
            changed_attribute="value",
            before_value=before,
            after_value=stored,
            operator_id=operator_id,
        )
        logger.info("Pricing policy updated by %s: %s", operator_id, stored)
        return policy
