# precast_pricing/models/mixins/timestamps.py
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import Mapped, mapped_column


def _now() -> datetime:
    return datetime.now()


class TimestampMixin:
    """
    created_at / updated_at for ledger rows.

    created_at is filled on the Python side (microsecond precision) because
    temporal resolution breaks effective-date ties by the newest row.
    """
    created_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        server_default=func.now(),
        nullable=False,
        comment="Creation timestamp",
    )

    updated_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        onupdate=_now,
        server_default=func.now(),
        nullable=False,
        comment="Last update timestamp",
    )
