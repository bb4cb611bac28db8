# precast_pricing/routes/system_config.py
from flask import Blueprint

from precast_pricing.db.session import get_session
from precast_pricing.routes.common import build_services, current_operator, ok, parse_body
from precast_pricing.schemas.requests import PricingPolicyRequest

system_config_bp = Blueprint("system_config", __name__, url_prefix="/api/system-config")


@system_config_bp.route("/pricing", methods=["GET"])
def get_pricing_policy():
    db = get_session()
    try:
        return ok(build_services(db).system_config.get_pricing_policy())
    finally:
        db.close()


@system_config_bp.route("/pricing", methods=["PUT"])
def update_pricing_policy():
    body = parse_body(PricingPolicyRequest)

    db = get_session()
    try:
        policy = build_services(db).system_config.update_pricing_policy(
            overrides=body.model_dump(exclude_none=True),
            operator_id=current_operator(),
        )
        db.commit()
        return ok(policy)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
