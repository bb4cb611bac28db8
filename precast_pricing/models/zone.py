# precast_pricing/models/zone.py
from sqlalchemy import String, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base


class Zone(Base):
    """
    Production / pricing region of a plant.
    Owned by zone CRUD; the engine only checks existence.
    """

    __tablename__ = "zones"

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Zone UUID")
    code :Mapped[str] = mapped_column(String(50), unique=True, nullable=False, comment="Short zone code")
    name :Mapped[str] = mapped_column(String(255), nullable=False, comment="Zone name")
    display_order :Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Sort order for listings")
    is_active :Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="Whether the zone is in use")

    def __repr__(self) -> str:
        return f"<Zone id={self.id} code={self.code}>"
