# precast_pricing/models/process_parameters.py
from datetime import date
from decimal import Decimal
from sqlalchemy import String, Numeric, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from precast_pricing.db.base import Base
from precast_pricing.models.mixins.timestamps import TimestampMixin

# 可编辑的参数字段（upsert / copy / compare 共用）
PARAMETER_FIELDS = (
    "energy_per_ton",
    "overhead_factory_per_ton",
    "overhead_company_per_ton",
    "profit_per_ton",
    "engineering_per_ton",
    "labor_rate_per_hour",
    "hours_per_ton_steel",
    "hours_per_m3_concrete",
)


def _rate_column(comment: str):
    return mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"), comment=comment)


class ProcessParameters(Base, TimestampMixin):
    """
    Zone/month cost-rate inputs. One row per (zone, month_date), month_date is
    always the first day of the month.
    """

    __tablename__ = "process_parameters"
    __table_args__ = (
        UniqueConstraint("zone_id", "month_date", name="uq_process_parameters_zone_month"),
    )

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Parameters row UUID")

    zone_id :Mapped[str] = mapped_column(String(36), ForeignKey("zones.id"), nullable=False, comment="Zone ID")
    month_date :Mapped[date] = mapped_column(Date, nullable=False, comment="First day of the month")

    energy_per_ton :Mapped[Decimal] = _rate_column("Curing energy cost per ton")
    overhead_factory_per_ton :Mapped[Decimal] = _rate_column("Factory overhead per ton")
    overhead_company_per_ton :Mapped[Decimal] = _rate_column("Company overhead per ton")
    profit_per_ton :Mapped[Decimal] = _rate_column("Profit per ton")
    engineering_per_ton :Mapped[Decimal] = _rate_column("Engineering cost per ton")
    labor_rate_per_hour :Mapped[Decimal] = _rate_column("Labor cost per hour")
    hours_per_ton_steel :Mapped[Decimal] = _rate_column("Labor hours per ton of steel")
    hours_per_m3_concrete :Mapped[Decimal] = _rate_column("Labor hours per m3 of concrete")

    def values(self) -> dict:
        return {f: getattr(self, f) for f in PARAMETER_FIELDS}

    def __repr__(self) -> str:
        return f"<ProcessParameters zone={self.zone_id} month={self.month_date}>"
