"""
SQLAlchemy ORM models for the backend store.

``DeviceRegistration`` holds one row per distinct unit name; the unique
constraint on ``device_name`` is what makes the registry upsert safe under
concurrent writers. ``GridPrice`` is an append-only log whose newest row is
the current price.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-104)

TODO:
- None
"""

import datetime

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEVICE_NAME_COLUMN_LEN = 64

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
_BigIntId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all backend ORM models."""

    pass


class DeviceRegistration(Base):
    """A unit name seen in telemetry or registered by an operator.

    Attributes:
        id: Surrogate key.
        device_name: Unit name, unique across the table.
        created_at: First sighting or registration (UTC).
        updated_at: Most recent sighting or registration (UTC); only moves
            forward.
    """

    __tablename__ = "device_registration"

    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    device_name: Mapped[str] = mapped_column(
        String(DEVICE_NAME_COLUMN_LEN),
        unique=True,
        nullable=False,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        """Return string representation of the DeviceRegistration."""
        return (
            f"DeviceRegistration(id={self.id!r}, "
            f"device_name={self.device_name!r}, updated_at={self.updated_at!r})"
        )


class GridPrice(Base):
    """Operator-entered grid electricity price.

    Attributes:
        id: Surrogate key.
        price: Price per kWh, strictly positive.
        estimated_savings: Savings at this price for the energy known when
            the price was recorded (nullable).
        created_at: Insert time (UTC).
        updated_at: Last modification time (UTC).
    """

    __tablename__ = "grid_price"

    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    estimated_savings: Mapped[float | None] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        """Return string representation of the GridPrice."""
        return f"GridPrice(id={self.id!r}, price={self.price!r})"
