# precast_pricing/models/formula_line.py
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Numeric, ForeignKey, UniqueConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from precast_pricing.db.base import Base
from precast_pricing.models.mixins.timestamps import TimestampMixin
from precast_pricing.models.material import Material


class FormulaLine(Base, TimestampMixin):
    """
    One bill-of-materials line: how much of a material one unit of a piece consumes.

    Invariants:
    - quantity_per_unit > 0
    - waste_factor >= 0 (fraction: 0.1 means 10% waste)
    - at most one line per (piece, material)
    - current state only, no history
    """

    __tablename__ = "piece_material_formulas"
    __table_args__ = (
        UniqueConstraint("piece_id", "material_id", name="uq_formula_piece_material"),
    )

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Formula line UUID")

    piece_id :Mapped[str] = mapped_column(
        String(36), ForeignKey("pieces.id"), nullable=False, index=True, comment="Owning piece ID"
    )
    material_id :Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False, index=True, comment="Consumed material ID"
    )

    quantity_per_unit :Mapped[Decimal] = mapped_column(
        Numeric(14, 6),
        nullable=False,
        comment="Material quantity per produced unit, in material unit",
    )
    waste_factor :Mapped[Decimal] = mapped_column(
        Numeric(8, 5),
        nullable=False,
        default=Decimal("0"),
        comment="Waste fraction added on top of quantity",
    )
    notes :Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Free text")

    material :Mapped[Material] = relationship(Material, lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<FormulaLine piece={self.piece_id} material={self.material_id} "
            f"qty={self.quantity_per_unit} waste={self.waste_factor}>"
        )
