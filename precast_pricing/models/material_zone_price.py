# precast_pricing/models/material_zone_price.py
from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Numeric, Date, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base
from precast_pricing.models.mixins.timestamps import TimestampMixin


class MaterialZonePrice(Base, TimestampMixin):
    """
    Time-versioned unit price of a material in a zone.

    A row is valid from valid_from to valid_until (inclusive, open when NULL).
    Rows are never deleted: a new price closes the previous window or
    deactivates a row that started the same day.
    """

    __tablename__ = "material_zone_prices"
    __table_args__ = (
        Index("ix_material_zone_price_lookup", "material_id", "zone_id", "valid_from"),
    )

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Price row UUID")

    material_id :Mapped[str] = mapped_column(String(36), ForeignKey("materials.id"), nullable=False, comment="Material ID")
    zone_id :Mapped[str] = mapped_column(String(36), ForeignKey("zones.id"), nullable=False, comment="Zone ID")

    price :Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, comment="Unit price in material unit")

    valid_from :Mapped[date] = mapped_column(Date, nullable=False, comment="First day the price applies")
    valid_until :Mapped[Optional[date]] = mapped_column(Date, nullable=True, comment="Last day the price applies, NULL = open")

    is_active :Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="False once deactivated")

    created_by :Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="Operator who set the price")

    def __repr__(self) -> str:
        return (
            f"<MaterialZonePrice material={self.material_id} zone={self.zone_id} "
            f"price={self.price} from={self.valid_from} until={self.valid_until}>"
        )
