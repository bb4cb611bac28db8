# precast_pricing/models/month_closure.py
from datetime import date, datetime
from sqlalchemy import String, Date, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base


class MonthClosure(Base):
    """
    Logical guard: a row here means the (zone, month) period no longer accepts
    parameter or price edits. Lookups ignore it.
    """

    __tablename__ = "month_closures"
    __table_args__ = (
        UniqueConstraint("zone_id", "month_date", name="uq_month_closure_zone_month"),
    )

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Closure UUID")
    zone_id :Mapped[str] = mapped_column(String(36), ForeignKey("zones.id"), nullable=False, comment="Zone ID")
    month_date :Mapped[date] = mapped_column(Date, nullable=False, comment="First day of the closed month")
    closed_by :Mapped[str] = mapped_column(String(36), nullable=False, comment="Operator who closed the period")
    closed_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Closing timestamp",
    )

    def __repr__(self) -> str:
        return f"<MonthClosure zone={self.zone_id} month={self.month_date}>"
