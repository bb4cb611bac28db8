# precast_pricing/routes/process_parameters.py
from datetime import date

from flask import Blueprint

from precast_pricing.db.session import get_session
from precast_pricing.routes.common import (
    build_services, current_operator, ok, parse_body,
    arg_date, arg_str,
)
from precast_pricing.schemas.parameters_dto import ProcessParametersDTO
from precast_pricing.schemas.requests import ProcessParametersRequest, CopyPreviousParametersRequest

parameters_bp = Blueprint("process_parameters", __name__, url_prefix="/api/process-parameters")


@parameters_bp.route("", methods=["GET"])
def get_parameters():
    """当月参数；当月缺失时返回上月参数并标记 fallback"""
    zone_id = arg_str("zone_id", required=True)
    month_date = arg_date("month_date", default=date.today())

    db = get_session()
    try:
        resolved = build_services(db).parameters.get_parameters(zone_id, month_date)
        return ok(ProcessParametersDTO.from_resolved(resolved))
    finally:
        db.close()


@parameters_bp.route("", methods=["PUT"])
def upsert_parameters():
    body = parse_body(ProcessParametersRequest)

    db = get_session()
    try:
        row = build_services(db).parameters.upsert_parameters(
            zone_id=body.zone_id,
            month_date=body.month_date,
            fields=body.parameter_fields(),
            operator_id=current_operator(),
        )
        db.commit()
        return ok(ProcessParametersDTO.from_domain_model(row))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@parameters_bp.route("/copy-previous", methods=["POST"])
def copy_previous():
    body = parse_body(CopyPreviousParametersRequest)

    db = get_session()
    try:
        row = build_services(db).parameters.copy_from_previous_month(
            zone_id=body.zone_id,
            target_month=body.month_date,
            operator_id=current_operator(),
        )
        db.commit()
        return ok(ProcessParametersDTO.from_domain_model(row))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@parameters_bp.route("/comparison", methods=["GET"])
def compare_zones():
    month_date = arg_date("month_date", default=date.today())

    db = get_session()
    try:
        rows = build_services(db).parameters.compare_zones(month_date)
        data = []
        for r in rows:
            data.append({
                **r,
                "current": {k: float(v) for k, v in r["current"].items()} if r["current"] else None,
                "previous": {k: float(v) for k, v in r["previous"].items()} if r["previous"] else None,
                "delta_percent": {
                    k: float(v) if v is not None else None for k, v in r["delta_percent"].items()
                },
            })
        return ok({"month_date": month_date.isoformat(), "zones": data})
    finally:
        db.close()
