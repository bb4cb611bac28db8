# precast_pricing/models/piece.py
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base


class Piece(Base):
    """
    Precast concrete piece. Geometry is static per piece and edited by piece CRUD;
    the calculator turns it into process and labor cost.
    """

    __tablename__ = "pieces"

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Piece UUID")
    code :Mapped[str] = mapped_column(String(50), unique=True, nullable=False, comment="Piece code")
    name :Mapped[str] = mapped_column(String(255), nullable=False, comment="Piece name")
    is_active :Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="Soft delete flag")

    # =========
    # 📐 Geometry (per production unit)
    # =========
    kg_steel_per_unit :Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 4),
        nullable=True,
        comment="Steel weight per unit in kg",
    )
    m3_concrete_per_unit :Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 4),
        nullable=True,
        comment="Concrete volume per unit in m3",
    )
    ton_weight_per_unit :Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 4),
        nullable=True,
        comment="Total weight per unit in metric tons",
    )

    def has_geometry(self) -> bool:
        return any(
            v not in (None, 0)
            for v in (self.kg_steel_per_unit, self.m3_concrete_per_unit, self.ton_weight_per_unit)
        )

    def __repr__(self) -> str:
        return f"<Piece id={self.id} code={self.code}>"
