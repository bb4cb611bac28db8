# precast_pricing/routes/formulas.py
from dataclasses import asdict

from flask import Blueprint

from precast_pricing.db.session import get_session
from precast_pricing.routes.common import build_services, current_operator, ok, parse_body
from precast_pricing.schemas.formula_dto import FormulaLineDTO, FormulaLineInput, FormulaPayload
from precast_pricing.schemas.requests import CopyFormulaRequest

formula_bp = Blueprint("formula", __name__, url_prefix="/api/pieces")


def _lines(lines):
    return [FormulaLineDTO.from_domain_model(line) for line in lines]


@formula_bp.route("/<piece_id>/formula", methods=["GET"])
def get_formula(piece_id):
    db = get_session()
    try:
        return ok(_lines(build_services(db).formulas.get_formula(piece_id)))
    finally:
        db.close()


@formula_bp.route("/<piece_id>/formula", methods=["PUT"])
def update_formula(piece_id):
    """整体替换配方"""
    body = parse_body(FormulaPayload)

    db = get_session()
    try:
        lines = build_services(db).formulas.update_formula(
            piece_id=piece_id, lines=body.lines, operator_id=current_operator()
        )
        db.commit()
        return ok(_lines(lines))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@formula_bp.route("/<piece_id>/formula/lines", methods=["POST"])
def add_line(piece_id):
    line = parse_body(FormulaLineInput)

    db = get_session()
    try:
        lines = build_services(db).formulas.add_line(
            piece_id=piece_id, line=line, operator_id=current_operator()
        )
        db.commit()
        return ok(_lines(lines), status=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@formula_bp.route("/<piece_id>/formula/lines/<material_id>", methods=["DELETE"])
def remove_line(piece_id, material_id):
    db = get_session()
    try:
        lines = build_services(db).formulas.remove_line(
            piece_id=piece_id, material_id=material_id, operator_id=current_operator()
        )
        db.commit()
        return ok(_lines(lines))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@formula_bp.route("/<piece_id>/formula/validate", methods=["POST"])
def validate_formula(piece_id):
    body = parse_body(FormulaPayload)

    db = get_session()
    try:
        result = build_services(db).formulas.validate_formula(piece_id, body.lines)
        return ok(asdict(result))
    finally:
        db.close()


@formula_bp.route("/<source_id>/formula/copy/<target_id>", methods=["POST"])
def copy_formula(source_id, target_id):
    body = parse_body(CopyFormulaRequest)

    db = get_session()
    try:
        lines = build_services(db).formulas.copy_formula(
            source_id=source_id,
            target_id=target_id,
            operator_id=current_operator(),
            overwrite=body.overwrite,
        )
        db.commit()
        return ok(_lines(lines))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
