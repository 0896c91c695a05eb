"""
Manual registry hooks: operator device registration and grid price.

Thin HTTP wrappers over ``services.registry`` and ``services.grid_price``.
Validation failures map to 422 and store failures to 503.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-110)

TODO:
- None
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from backend.src.api.deps import DbSession
from backend.src.services.grid_price import GridPriceResult, latest_grid_price, record_grid_price
from backend.src.services.registry import latest_device, list_devices, register_device
from telemetry.src.errors import PersistenceError, ValidationError
from telemetry.src.models import RegistrationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["registry"])


class DeviceIn(BaseModel):
    """Body of POST /v1/devices."""

    device_name: str


class GridPriceIn(BaseModel):
    """Body of POST /v1/grid-price."""

    price: float
    energy_kwh: float | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: ValidationError | PersistenceError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"error": str(exc), "issues": exc.issues})
    logger.error("Store error: %s", exc)
    return HTTPException(status_code=503, detail="Storage unavailable")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/devices")
async def get_devices(db: DbSession) -> list[RegistrationResult]:
    """List every registered device ordered by name."""
    try:
        return await list_devices(db)
    except PersistenceError as exc:
        raise _http_error(exc) from exc


@router.get("/devices/latest")
async def get_latest_device(db: DbSession) -> RegistrationResult:
    """Return the most recently seen device, 404 if none."""
    try:
        device = await latest_device(db)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    if device is None:
        raise HTTPException(status_code=404, detail="No device registered")
    return device


@router.post("/devices")
async def post_device(body: DeviceIn, db: DbSession) -> RegistrationResult:
    """Register a device name; repeating the call only refreshes updated_at."""
    try:
        return await register_device(db, body.device_name)
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@router.get("/grid-price")
async def get_grid_price(db: DbSession) -> GridPriceResult:
    """Return the current grid price, 404 if none was set."""
    try:
        price = await latest_grid_price(db)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    if price is None:
        raise HTTPException(status_code=404, detail="No grid price set")
    return price


@router.post("/grid-price")
async def post_grid_price(body: GridPriceIn, db: DbSession) -> GridPriceResult:
    """Record a new current grid price."""
    try:
        return await record_grid_price(db, body.price, body.energy_kwh)
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc
