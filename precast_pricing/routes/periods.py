# precast_pricing/routes/periods.py
from flask import Blueprint

from precast_pricing.db.session import get_session
from precast_pricing.routes.common import build_services, current_operator, ok, parse_body, arg_str
from precast_pricing.schemas.requests import ClosePeriodRequest

period_bp = Blueprint("period", __name__, url_prefix="/api/periods")


def _closure(c) -> dict:
    return {
        "id": c.id,
        "zone_id": c.zone_id,
        "month_date": c.month_date.isoformat(),
        "closed_by": c.closed_by,
        "closed_at": c.closed_at.isoformat() if c.closed_at else None,
    }


@period_bp.route("/close", methods=["POST"])
def close_period():
    body = parse_body(ClosePeriodRequest)

    db = get_session()
    try:
        closure = build_services(db).month_close.close_month(
            zone_id=body.zone_id,
            month_date=body.month_date,
            operator_id=current_operator(),
        )
        db.commit()
        return ok(_closure(closure), status=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@period_bp.route("", methods=["GET"])
def list_periods():
    db = get_session()
    try:
        closures = build_services(db).month_close.list_closures(zone_id=arg_str("zone_id"))
        return ok([_closure(c) for c in closures])
    finally:
        db.close()
