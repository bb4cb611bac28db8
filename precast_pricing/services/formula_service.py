# precast_pricing/services/formula_service.py
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Sequence
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from precast_pricing.errors import ValidationError, NotFoundError, ErrorCode
from precast_pricing.models.formula_line import FormulaLine
from precast_pricing.models.material import Material
from precast_pricing.models.piece import Piece
from precast_pricing.schemas.formula_dto import FormulaLineInput
from precast_pricing.services.audit_log_service import AuditLogService
from precast_pricing.services.reference_data import load_piece, load_material
from precast_pricing.db.enums import AuditEntityType
from precast_pricing.logger import get_logger

logger = get_logger(__name__)


@dataclass
class FormulaValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class FormulaService:
    """
    Bill-of-materials management for pieces.

    Responsibilities:
    - read / replace / edit the formula of a piece
    - validate formulas without raising (errors + soft warnings)
    - copy formulas between pieces
    - where-used and usage statistics per material
    """

    def __init__(self, db: Session, audit_log_service: AuditLogService):
        self.db = db
        self.audit_log_service = audit_log_service

    # ======================================================
    # 📖 Read
    # ======================================================

    def get_formula(self, piece_id: str) -> List[FormulaLine]:
        load_piece(self.db, piece_id)
        return self._lines(piece_id)

    def _lines(self, piece_id: str) -> List[FormulaLine]:
        return list(
            self.db.execute(
                select(FormulaLine)
                .join(Material, FormulaLine.material_id == Material.id)
                .where(FormulaLine.piece_id == piece_id)
                .order_by(Material.category, Material.name)
            ).scalars().unique()
        )

    # ======================================================
    # ✅ Validation
    # ======================================================

    def validate_formula(
        self,
        piece_id: str,
        lines: Sequence[FormulaLineInput],
    ) -> FormulaValidationResult:
        '''
        Validate a formula candidate. Never raises for data problems.

        Errors (block saving):
        - material does not exist
        - quantity_per_unit <= 0
        - waste_factor < 0
        Warnings (surfaced, do not block):
        - the same material appears in more than one line
        - material is inactive
        - waste_factor >= 1, probably typed as a multiplier instead of a fraction

        :param piece_id: piece the formula is for
        :param lines: candidate lines
        :rtype: FormulaValidationResult
        '''
        errors: List[str] = []
        warnings: List[str] = []

        if self.db.get(Piece, piece_id) is None:
            errors.append(f"Piece {piece_id} does not exist")

        material_ids = {line.material_id for line in lines}
        materials: Dict[str, Material] = {}
        if material_ids:
            materials = {
                m.id: m
                for m in self.db.execute(
                    select(Material).where(Material.id.in_(material_ids))
                ).scalars()
            }

        for line in lines:
            material = materials.get(line.material_id)
            label = material.name if material else line.material_id

            if material is None:
                errors.append(f"Material {line.material_id} does not exist")
            elif not material.is_active:
                warnings.append(f"Material {material.name} is inactive")

            if line.quantity_per_unit is None or line.quantity_per_unit <= 0:
                errors.append(f"Quantity per unit must be greater than 0 for material {label}")

            if line.waste_factor is not None and line.waste_factor < 0:
                errors.append(f"Waste factor cannot be negative for material {label}")
            elif line.waste_factor is not None and line.waste_factor >= 1:
                warnings.append(
                    f"Waste factor {line.waste_factor} for material {label} is 100% or more; "
                    f"it is a fraction, not a multiplier"
                )

        counts = Counter(line.material_id for line in lines)
        for material_id, count in counts.items():
            if count > 1:
                material = materials.get(material_id)
                warnings.append(
                    f"Material {material.name if material else material_id} appears {count} times in the formula"
                )

        return FormulaValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # ======================================================
    # ✍️ Write
    # ======================================================

    def update_formula(
        self,
        *,
        piece_id: str,
        lines: Sequence[FormulaLineInput],
        operator_id: str,
    ) -> List[FormulaLine]:
        '''
        Replace the whole formula of a piece.
        Duplicate material lines are merged into one line (quantities summed)
        because (piece, material) is unique.

        :raises NotFoundError: piece does not exist
        :raises ValidationError: INVALID_FORMULA with the validation errors
        '''
        load_piece(self.db, piece_id)
        result = self.validate_formula(piece_id, lines)
        if not result.valid:
            raise ValidationError(
                "Formula is not valid",
                code=ErrorCode.INVALID_FORMULA,
                details={"errors": result.errors, "warnings": result.warnings},
            )

        old_lines = self._lines(piece_id)
        before = [self._snapshot(line) for line in old_lines]
        for line in old_lines:
            self.db.delete(line)
        self.db.flush()

        for line in self._merge_duplicates(lines):
            self.db.add(self._new_line(piece_id, line))
        self.db.flush()

        new_lines = self._lines(piece_id)
        self.audit_log_service.record_update(
            zone_id=None,
            entity_type=AuditEntityType.Piece,
            entity_id=piece_id,
            changed_attribute="formula",
            before_value=before,
            after_value=[self._snapshot(line) for line in new_lines],
            operator_id=operator_id,
        )
        logger.info("Formula of piece %s replaced with %d lines", piece_id, len(new_lines))
        return new_lines

    def add_line(
        self,
        *,
        piece_id: str,
        line: FormulaLineInput,
        operator_id: str,
    ) -> List[FormulaLine]:
        '''
        Add a single material to the formula.

        :raises ValidationError: DUPLICATE_MATERIAL when the material is already used,
                                 INVALID_FORMULA when the line itself is invalid
        '''
        load_piece(self.db, piece_id)
        load_material(self.db, line.material_id)

        existing = self._find_line(piece_id, line.material_id)
        if existing is not None:
            raise ValidationError(
                "Material is already in the formula of this piece",
                code=ErrorCode.DUPLICATE_MATERIAL,
                details={"piece_id": piece_id, "material_id": line.material_id},
            )

        result = self.validate_formula(piece_id, [line])
        if not result.valid:
            raise ValidationError(
                "Formula line is not valid",
                code=ErrorCode.INVALID_FORMULA,
                details={"errors": result.errors, "warnings": result.warnings},
            )

        new_line = self._new_line(piece_id, line)
        self.db.add(new_line)
        self.db.flush()

        self.audit_log_service.record_create(
            zone_id=None,
            entity_type=AuditEntityType.FormulaLine,
            entity_id=new_line.id,
            operator_id=operator_id,
            after_value=self._snapshot(new_line),
        )
        return self._lines(piece_id)

    def remove_line(
        self,
        *,
        piece_id: str,
        material_id: str,
        operator_id: str,
    ) -> List[FormulaLine]:
        load_piece(self.db, piece_id)
        line = self._find_line(piece_id, material_id)
        if line is None:
            raise NotFoundError(
                "Material not found in the formula",
                details={"piece_id": piece_id, "material_id": material_id},
            )

        self.audit_log_service.record_delete(
            zone_id=None,
            entity_type=AuditEntityType.FormulaLine,
            entity_id=line.id,
            before_value=self._snapshot(line),
            operator_id=operator_id,
        )
        self.db.delete(line)
        self.db.flush()
        return self._lines(piece_id)

    def copy_formula(
        self,
        *,
        source_id: str,
        target_id: str,
        operator_id: str,
        overwrite: bool = False,
    ) -> List[FormulaLine]:
        '''
        Copy the formula of one piece to another.

        :param overwrite: replace the target formula when it already has lines
        :raises ValidationError: SAME_PIECE / EMPTY_SOURCE_FORMULA / TARGET_HAS_FORMULA
        '''
        if source_id == target_id:
            raise ValidationError(
                "Source and target piece are the same",
                code=ErrorCode.SAME_PIECE,
                details={"piece_id": source_id},
            )
        load_piece(self.db, source_id)
        load_piece(self.db, target_id)

        source_lines = self._lines(source_id)
        if not source_lines:
            raise ValidationError(
                "Source piece has no formula",
                code=ErrorCode.EMPTY_SOURCE_FORMULA,
                details={"piece_id": source_id},
            )

        target_lines = self._lines(target_id)
        if target_lines and not overwrite:
            raise ValidationError(
                "Target piece already has a formula; pass overwrite to replace it",
                code=ErrorCode.TARGET_HAS_FORMULA,
                details={"piece_id": target_id, "line_count": len(target_lines)},
            )

        copied = [
            FormulaLineInput(
                material_id=line.material_id,
                quantity_per_unit=line.quantity_per_unit,
                waste_factor=line.waste_factor or Decimal("0"),
                notes=line.notes,
            )
            for line in source_lines
        ]
        return self.update_formula(piece_id=target_id, lines=copied, operator_id=operator_id)

    # ======================================================
    # 🔎 Material usage
    # ======================================================

    def get_pieces_using_material(self, material_id: str) -> List[dict]:
        load_material(self.db, material_id)
        rows = self.db.execute(
            select(FormulaLine, Piece)
            .join(Piece, FormulaLine.piece_id == Piece.id)
            .where(FormulaLine.material_id == material_id, Piece.is_active.is_(True))
            .order_by(Piece.name)
        ).all()
        return [
            {
                "piece_id": piece.id,
                "piece_code": piece.code,
                "piece_name": piece.name,
                "quantity_per_unit": line.quantity_per_unit,
                "waste_factor": line.waste_factor,
            }
            for line, piece in rows
        ]

    def get_material_usage_stats(self) -> List[dict]:
        pieces_count = func.count(FormulaLine.piece_id)
        rows = self.db.execute(
            select(
                Material.id,
                Material.name,
                Material.category,
                pieces_count.label("pieces_count"),
                func.avg(FormulaLine.quantity_per_unit).label("avg_quantity_per_unit"),
                func.sum(FormulaLine.quantity_per_unit).label("total_quantity_per_unit"),
            )
            .outerjoin(FormulaLine, FormulaLine.material_id == Material.id)
            .where(Material.is_active.is_(True))
            .group_by(Material.id, Material.name, Material.category)
            .order_by(pieces_count.desc(), Material.name)
        ).all()
        return [
            {
                "material_id": r.id,
                "material_name": r.name,
                "category": r.category,
                "pieces_count": int(r.pieces_count or 0),
                "avg_quantity_per_unit": float(r.avg_quantity_per_unit) if r.avg_quantity_per_unit is not None else None,
                "total_quantity_per_unit": float(r.total_quantity_per_unit or 0),
            }
            for r in rows
        ]

    # ======================================================
    # 🔐 Internal helpers
    # ======================================================

    def _find_line(self, piece_id: str, material_id: str):
        return self.db.execute(
            select(FormulaLine).where(
                FormulaLine.piece_id == piece_id,
                FormulaLine.material_id == material_id,
            )
        ).scalars().first()

    def _merge_duplicates(self, lines: Sequence[FormulaLineInput]) -> List[FormulaLineInput]:
        merged: Dict[str, FormulaLineInput] = {}
        for line in lines:
            prev = merged.get(line.material_id)
            if prev is None:
                merged[line.material_id] = line
                continue
            merged[line.material_id] = prev.model_copy(
                update={"quantity_per_unit": prev.quantity_per_unit + line.quantity_per_unit}
            )
        return list(merged.values())

    def _new_line(self, piece_id: str, line: FormulaLineInput) -> FormulaLine:
        return FormulaLine(
            id=str(uuid4()),
            piece_id=piece_id,
            material_id=line.material_id,
            quantity_per_unit=line.quantity_per_unit,
            waste_factor=line.waste_factor if line.waste_factor is not None else Decimal("0"),
            notes=line.notes,
        )

    @staticmethod
    def _snapshot(line: FormulaLine) -> dict:
        return {
            "material_id": line.material_id,
            "quantity_per_unit": line.quantity_per_unit,
            "waste_factor": line.waste_factor,
        }
