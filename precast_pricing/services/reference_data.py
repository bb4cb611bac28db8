# precast_pricing/services/reference_data.py
'''
Existence checks against collaborator-owned tables (pieces, zones, materials).
'''
from sqlalchemy.orm import Session

from precast_pricing.errors import NotFoundError, ValidationError, ErrorCode
from precast_pricing.models.piece import Piece
from precast_pricing.models.zone import Zone
from precast_pricing.models.material import Material


def _require_id(value, name: str) -> str:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{name} is required", code=ErrorCode.MISSING_FIELD, details={"field": name})
    return str(value).strip()


def load_piece(db: Session, piece_id: str) -> Piece:
    piece_id = _require_id(piece_id, "piece_id")
    piece = db.get(Piece, piece_id)
    if piece is None:
        raise NotFoundError(f"Piece not found: {piece_id}", details={"piece_id": piece_id})
    return piece


def load_zone(db: Session, zone_id: str) -> Zone:
    zone_id = _require_id(zone_id, "zone_id")
    zone = db.get(Zone, zone_id)
    if zone is None:
        raise NotFoundError(f"Zone not found: {zone_id}", details={"zone_id": zone_id})
    return zone


def load_material(db: Session, material_id: str) -> Material:
    material_id = _require_id(material_id, "material_id")
    material = db.get(Material, material_id)
    if material is None:
        raise NotFoundError(f"Material not found: {material_id}", details={"material_id": material_id})
    return material
