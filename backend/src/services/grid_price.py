"""
Grid price service.

The grid price is device independent and written only by explicit operator
action. Every change appends a row; the newest row is the current price.

CHANGELOG:
- 2026-10-18: Treat unreachable-server errors as PersistenceError (STORY-112)
- 2026-10-18: Initial creation (STORY-110)
"""

import contextlib
import logging
import math
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.db.models import GridPrice
from backend.src.db.session import STORE_ERRORS
from telemetry.src.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

STORED_PRICE_MAX = 1000
"""Exclusive upper bound for a stored grid price per kWh."""


class GridPriceResult(BaseModel):
    """A stored grid price row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    price: float
    estimated_savings: float | None
    created_at: datetime
    updated_at: datetime


def _check_price(price: float) -> float:
    if isinstance(price, bool) or not isinstance(price, int | float):
        raise ValidationError("invalid grid price", ["price: must be a number"])
    price = float(price)
    if not math.isfinite(price) or not 0 < price < STORED_PRICE_MAX:
        raise ValidationError(
            "invalid grid price",
            [f"price: must be greater than 0 and less than {STORED_PRICE_MAX}"],
        )
    return price


async def record_grid_price(
    db: AsyncSession,
    price: float,
    energy_kwh: float | None = None,
    now: datetime | None = None,
) -> GridPriceResult:
    """Append a new current grid price.

    Args:
        db: Async SQLAlchemy session.
        price: Price per kWh, 0 < price < 1000.
        energy_kwh: Cumulative energy to value at this price; when given,
            ``estimated_savings`` is ``round(energy_kwh * price, 2)``.
        now: Row timestamp; defaults to the current UTC time.

    Returns:
        GridPriceResult: The inserted row.

    Raises:
        ValidationError: If the price or energy is out of range.
        PersistenceError: If the store rejected the write.
    """
    price = _check_price(price)
    savings = None
    if energy_kwh is not None:
        if not math.isfinite(energy_kwh) or energy_kwh < 0:
            raise ValidationError("invalid energy", ["energy_kwh: must be a finite number >= 0"])
        savings = round(energy_kwh * price, 2)

    ts = now or datetime.now(UTC)
    row = GridPrice(price=price, estimated_savings=savings, created_at=ts, updated_at=ts)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except STORE_ERRORS as exc:
        with contextlib.suppress(*STORE_ERRORS):
            await db.rollback()
        raise PersistenceError(f"grid price insert failed: {exc}") from exc

    logger.info("Grid price set to %.2f (estimated_savings=%s)", price, savings)
    return GridPriceResult.model_validate(row)


async def latest_grid_price(db: AsyncSession) -> GridPriceResult | None:
    """Return the current grid price, or None if none was ever set."""
    try:
        row = await db.scalar(
            select(GridPrice).order_by(GridPrice.updated_at.desc(), GridPrice.id.desc()).limit(1)
        )
    except STORE_ERRORS as exc:
        raise PersistenceError(f"reading grid price failed: {exc}") from exc
    return GridPriceResult.model_validate(row) if row is not None else None
