# precast_pricing/routes/materials.py
from datetime import date

from flask import Blueprint, Response, request

from precast_pricing.db.session import get_session
from precast_pricing.errors import ValidationError, ErrorCode
from precast_pricing.routes.common import (
    build_services, current_operator, ok, parse_body,
    arg_date, arg_str,
)
from precast_pricing.schemas.material_price_dto import ImportSummaryDTO, MaterialZonePriceDTO
from precast_pricing.schemas.requests import (
    ImportPricesRequest, MaterialPriceRequest, RecalculateImpactRequest,
)
from precast_pricing.services.query_spec import MaterialPriceQuery
from precast_pricing.services.temporal_resolution import to_date

material_bp = Blueprint("material", __name__, url_prefix="/api/materials")


def _jsonable(rows):
    out = []
    for row in rows:
        item = {}
        for key, value in row.items():
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            elif value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
                value = float(value)
            item[key] = value
        out.append(item)
    return out


# ======================================================
# 🔎 Where used
# ======================================================

@material_bp.route("/<material_id>/pieces", methods=["GET"])
def pieces_using_material(material_id):
    db = get_session()
    try:
        return ok(_jsonable(build_services(db).formulas.get_pieces_using_material(material_id)))
    finally:
        db.close()


@material_bp.route("/usage-stats", methods=["GET"])
def usage_stats():
    db = get_session()
    try:
        return ok(build_services(db).formulas.get_material_usage_stats())
    finally:
        db.close()


# ======================================================
# 💰 Prices
# ======================================================

@material_bp.route("/prices", methods=["GET"])
def list_prices():
    spec = MaterialPriceQuery(
        zone_id=arg_str("zone_id", required=True),
        as_of=arg_date("as_of", default=date.today()),
        search=arg_str("search"),
        category=arg_str("category"),
        active_only=(request.args.get("active_only", "true").strip().lower() != "false"),
    )

    db = get_session()
    try:
        return ok(_jsonable(build_services(db).material_prices.list_current_prices(spec)))
    finally:
        db.close()


@material_bp.route("/prices", methods=["POST"])
def set_price():
    body = parse_body(MaterialPriceRequest)

    db = get_session()
    try:
        row = build_services(db).material_prices.set_price(
            material_id=body.material_id,
            zone_id=body.zone_id,
            price=body.price,
            valid_from=body.valid_from,
            operator_id=current_operator(),
        )
        db.commit()
        return ok(MaterialZonePriceDTO.from_domain_model(row), status=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@material_bp.route("/prices/<price_id>", methods=["DELETE"])
def deactivate_price(price_id):
    db = get_session()
    try:
        row = build_services(db).material_prices.deactivate_price(
            price_id=price_id, operator_id=current_operator()
        )
        db.commit()
        return ok(MaterialZonePriceDTO.from_domain_model(row))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@material_bp.route("/<material_id>/price-history", methods=["GET"])
def material_price_history(material_id):
    zone_id = arg_str("zone_id")

    db = get_session()
    try:
        rows = build_services(db).material_prices.get_price_history(material_id, zone_id=zone_id)
        return ok([MaterialZonePriceDTO.from_domain_model(r) for r in rows])
    finally:
        db.close()


# ======================================================
# 📥 Import / 📤 Export
# ======================================================

@material_bp.route("/prices/import", methods=["POST"])
def import_prices():
    """
    JSON {zone_id, month_date, rows | csv} or multipart form with a CSV `file`.
    All or nothing: any failing row leaves the ledger untouched.
    """
    upload = request.files.get("file")
    if upload is not None:
        zone_id = (request.form.get("zone_id") or "").strip()
        month_raw = (request.form.get("month_date") or "").strip()
        if not zone_id or not month_raw:
            raise ValidationError(
                "zone_id and month_date are required",
                code=ErrorCode.MISSING_FIELD,
                details={"fields": ["zone_id", "month_date"]},
            )
        try:
            month_date = to_date(month_raw)
        except ValueError:
            raise ValidationError("month_date must be an ISO date", code=ErrorCode.INVALID_PAYLOAD)
        try:
            csv_text = upload.read().decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError(
                "Uploaded file is not valid UTF-8 text",
                code=ErrorCode.INVALID_PAYLOAD,
                details={"file": upload.filename, "position": e.start},
            )
        rows = None
    else:
        body = parse_body(ImportPricesRequest)
        zone_id, month_date, csv_text, rows = body.zone_id, body.month_date, body.csv, body.rows

    db = get_session()
    try:
        services = build_services(db)
        if csv_text is not None:
            rows = services.material_prices.parse_price_csv(csv_text)
        summary = services.material_prices.import_prices(
            zone_id=zone_id,
            month_date=month_date,
            rows=rows,
            operator_id=current_operator(),
        )
        if summary.applied:
            db.commit()
        else:
            db.rollback()
        return ok(
            ImportSummaryDTO.from_domain_model(summary),
            status=200 if summary.applied else 400,
            success=summary.applied,
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@material_bp.route("/prices/export", methods=["GET"])
def export_prices():
    zone_id = arg_str("zone_id", required=True)
    as_of = arg_date("as_of", default=date.today())

    db = get_session()
    try:
        csv_text = build_services(db).material_prices.export_prices_csv(zone_id, as_of)
        filename = f"material_prices_{zone_id}_{as_of.isoformat()}.csv"
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    finally:
        db.close()


@material_bp.route("/recalculate-impact", methods=["POST"])
def recalculate_impact():
    body = parse_body(RecalculateImpactRequest)

    db = get_session()
    try:
        impact = build_services(db).breakdown.recalculate_impact(
            material_id=body.material_id,
            zone_id=body.zone_id,
            as_of=body.as_of or date.today(),
        )
        return ok(_jsonable(impact))
    finally:
        db.close()
