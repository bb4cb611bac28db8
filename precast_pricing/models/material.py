# precast_pricing/models/material.py
from typing import Optional
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base


class Material(Base):
    """
    Raw material consumed by pieces (cement, steel bar, aggregate...).
    Identity is immutable; attributes are edited by material CRUD.
    """

    __tablename__ = "materials"

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Material UUID")

    code :Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="Material code, used by CSV import/export",
    )
    name :Mapped[str] = mapped_column(String(255), nullable=False, comment="Material name")
    unit :Mapped[str] = mapped_column(String(20), nullable=False, comment="Unit of measure (kg, m3, ...)")
    category :Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="Material category")
    is_active :Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="Soft delete flag")

    def __repr__(self) -> str:
        return f"<Material id={self.id} code={self.code} unit={self.unit}>"
