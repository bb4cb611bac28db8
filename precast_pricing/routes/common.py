# precast_pricing/routes/common.py
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Type, TypeVar

from flask import jsonify, request, session
from pydantic import BaseModel
from sqlalchemy.orm import Session

from precast_pricing.errors import ValidationError, ErrorCode
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.cost_breakdown_service import CostBreakdownService
from precast_pricing.services.formula_service import FormulaService
from precast_pricing.services.material_price_service import MaterialPriceService
from precast_pricing.services.month_close_service import MonthCloseService
from precast_pricing.services.price_history_service import PriceHistoryService
from precast_pricing.services.price_publisher_service import PricePublisherService
from precast_pricing.services.process_parameter_service import ProcessParameterService
from precast_pricing.services.system_config_service import SystemConfigService
from precast_pricing.services.temporal_resolution import to_date

M = TypeVar("M", bound=BaseModel)


@dataclass
class Services:
    audit_log: AuditLogService
    formulas: FormulaService
    month_close: MonthCloseService
    material_prices: MaterialPriceService
    parameters: ProcessParameterService
    system_config: SystemConfigService
    history: PriceHistoryService
    breakdown: CostBreakdownService
    publisher: PricePublisherService


def build_services(db: Session) -> Services:
    '''Wire every service onto one request session.'''
    audit_log_service = AuditLogService(db)
    month_close_service = MonthCloseService(db, audit_log_service)
    material_price_service = MaterialPriceService(db, audit_log_service, month_close_service)
    parameter_service = ProcessParameterService(db, audit_log_service, month_close_service)
    system_config_service = SystemConfigService(db, audit_log_service)
    history_service = PriceHistoryService(db)
    breakdown_service = CostBreakdownService(
        db,
        material_price_service,
        parameter_service,
        system_config_service,
        history_service,
    )
    return Services(
        audit_log=audit_log_service,
        formulas=FormulaService(db, audit_log_service),
        month_close=month_close_service,
        material_prices=material_price_service,
        parameters=parameter_service,
        system_config=system_config_service,
        history=history_service,
        breakdown=breakdown_service,
        publisher=PricePublisherService(
            db, audit_log_service, breakdown_service, month_close_service, history_service
        ),
    )


def current_operator() -> str:
    """当前操作人：session 登录用户 > X-User-Id 头 > anonymous"""
    return session.get("user_id") or request.headers.get("X-User-Id") or "anonymous"


def ok(data: Any = None, status: int = 200, success: bool = True):
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return jsonify({"success": success, "data": data}), status


def parse_body(model: Type[M]) -> M:
    '''Validate the JSON body; pydantic errors are turned into INVALID_PAYLOAD by the app.'''
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code=ErrorCode.INVALID_PAYLOAD)
    return model.model_validate(payload)


def arg_date(name: str, default: Optional[date] = None, required: bool = False) -> Optional[date]:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        if required:
            raise ValidationError(f"{name} is required", code=ErrorCode.MISSING_FIELD, details={"field": name})
        return default
    try:
        return to_date(raw)
    except ValueError:
        raise ValidationError(
            f"{name} must be an ISO date (YYYY-MM-DD)",
            code=ErrorCode.INVALID_PAYLOAD,
            details={"field": name, "value": raw},
        )


def arg_str(name: str, required: bool = False) -> Optional[str]:
    value = (request.args.get(name) or "").strip() or None
    if value is None and required:
        raise ValidationError(f"{name} is required", code=ErrorCode.MISSING_FIELD, details={"field": name})
    return value


def arg_bool(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes", "on")


def arg_int(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(
            f"{name} must be an integer", code=ErrorCode.INVALID_PAYLOAD, details={"field": name, "value": raw}
        )
