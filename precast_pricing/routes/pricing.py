# precast_pricing/routes/pricing.py
from datetime import date

from flask import Blueprint

from precast_pricing.config import load_settings
from precast_pricing.db.session import get_session
from precast_pricing.routes.common import (
    build_services, current_operator, ok, parse_body,
    arg_bool, arg_date, arg_int, arg_str,
)
from precast_pricing.schemas.breakdown_dto import CostBreakdownDTO, PriceComparisonDTO
from precast_pricing.schemas.price_dto import PieceZonePriceDTO, PriceHistoryEntryDTO
from precast_pricing.schemas.requests import PublishPriceRequest, CopyZonePricesRequest
from precast_pricing.services.price_line import SuppliedPrice, ComputedPrice

pricing_bp = Blueprint("pricing", __name__, url_prefix="/api")


@pricing_bp.route("/pieces/<piece_id>/breakdown", methods=["GET"])
def get_breakdown(piece_id):
    """成本拆解；compare=true 附带环比，publish=true 同时发布计算价"""
    zone_id = arg_str("zone_id", required=True)
    as_of = arg_date("as_of", default=date.today())
    compare = arg_bool("compare")
    publish = arg_bool("publish")

    db = get_session()
    try:
        services = build_services(db)
        breakdown = services.breakdown.calculate(piece_id=piece_id, zone_id=zone_id, as_of=as_of)
        data = {"breakdown": CostBreakdownDTO.from_domain_model(breakdown).model_dump(mode="json")}

        if compare:
            comparison = services.history.compare(piece_id, zone_id, as_of, current_price=breakdown.total)
            data["comparison"] = PriceComparisonDTO.from_domain_model(comparison).model_dump(mode="json")

        if publish:
            result = services.publisher.publish(
                piece_id=piece_id,
                zone_id=zone_id,
                effective_date=as_of,
                price_line=ComputedPrice(breakdown=breakdown),
                operator_id=current_operator(),
            )
            db.commit()
            data["published"] = PieceZonePriceDTO.from_domain_model(result.price).model_dump(mode="json")

        return ok(data)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@pricing_bp.route("/pieces/<piece_id>/prices", methods=["POST"])
def publish_price(piece_id):
    body = parse_body(PublishPriceRequest)
    if body.price is None:
        price_line = ComputedPrice(adjustment=body.adjustment)
    else:
        price_line = SuppliedPrice(amount=body.price, adjustment=body.adjustment)

    db = get_session()
    try:
        services = build_services(db)
        result = services.publisher.publish(
            piece_id=piece_id,
            zone_id=body.zone_id,
            effective_date=body.effective_date,
            price_line=price_line,
            operator_id=current_operator(),
        )
        db.commit()
        return ok(
            PieceZonePriceDTO.from_domain_model(result.price),
            status=201 if result.created else 200,
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@pricing_bp.route("/pieces/<piece_id>/prices/history", methods=["GET"])
def price_history(piece_id):
    zone_id = arg_str("zone_id")
    limit = arg_int("limit", load_settings().history_default_limit)

    db = get_session()
    try:
        entries = build_services(db).history.get_history(piece_id, zone_id=zone_id, limit=limit)
        return ok([PriceHistoryEntryDTO.from_domain_model(e) for e in entries])
    finally:
        db.close()


@pricing_bp.route("/pieces/<piece_id>/prices/compare", methods=["GET"])
def compare_price(piece_id):
    zone_id = arg_str("zone_id", required=True)
    as_of = arg_date("as_of", default=date.today())

    db = get_session()
    try:
        comparison = build_services(db).history.compare(piece_id, zone_id, as_of)
        return ok(PriceComparisonDTO.from_domain_model(comparison))
    finally:
        db.close()


@pricing_bp.route("/zones/prices/copy", methods=["POST"])
def copy_zone_prices():
    body = parse_body(CopyZonePricesRequest)

    db = get_session()
    try:
        rows = build_services(db).publisher.copy_zone_prices(
            source_zone_id=body.source_zone_id,
            target_zone_id=body.target_zone_id,
            effective_date=body.effective_date,
            adjustment_percentage=body.adjustment_percentage,
            operator_id=current_operator(),
        )
        db.commit()
        return ok({
            "copied": len(rows),
            "prices": [PieceZonePriceDTO.from_domain_model(r).model_dump(mode="json") for r in rows],
        })
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
