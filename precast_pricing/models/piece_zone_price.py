# precast_pricing/models/piece_zone_price.py
from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Numeric, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base
from precast_pricing.models.mixins.timestamps import TimestampMixin


class PieceZonePrice(Base, TimestampMixin):
    """
    Authoritative published sale price of a piece in a zone.

    Invariants:
    - at most one row per (piece, zone, effective_date); republishing the same
      date overwrites, a new date appends
    - open-ended: the latest effective_date <= as_of wins
    """

    __tablename__ = "piece_zone_prices"
    __table_args__ = (
        UniqueConstraint("piece_id", "zone_id", "effective_date", name="uq_piece_zone_price_date"),
    )

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Piece price UUID")

    piece_id :Mapped[str] = mapped_column(String(36), ForeignKey("pieces.id"), nullable=False, comment="Piece ID")
    zone_id :Mapped[str] = mapped_column(String(36), ForeignKey("zones.id"), nullable=False, comment="Zone ID")
    effective_date :Mapped[date] = mapped_column(Date, nullable=False, comment="Date the price takes effect")

    base_price :Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"), comment="Computed or supplied price")
    adjustment :Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"), comment="Manual adjustment on top of base")

    created_by :Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="Operator who published")

    @property
    def final_price(self) -> Decimal:
        return Decimal(self.base_price or 0) + Decimal(self.adjustment or 0)

    def __repr__(self) -> str:
        return (
            f"<PieceZonePrice piece={self.piece_id} zone={self.zone_id} "
            f"date={self.effective_date} final={self.final_price}>"
        )
