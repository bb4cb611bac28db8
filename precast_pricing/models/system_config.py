# precast_pricing/models/system_config.py
from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base
from precast_pricing.models.mixins.timestamps import TimestampMixin


class SystemConfig(Base, TimestampMixin):
    """
    Stored configuration overrides, one JSON document per key.
    Merged over process defaults at read time; never read as a global.
    """

    __tablename__ = "system_config"

    key :Mapped[str] = mapped_column(String(100), primary_key=True, comment="Config section, e.g. 'pricing'")
    value :Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, comment="Override values")

    def __repr__(self) -> str:
        return f"<SystemConfig key={self.key}>"
