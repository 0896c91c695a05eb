"""
Device registry service: idempotent upsert of unit names.

Both write paths (telemetry sightings from the subscriber and explicit
operator registration) converge on ``_upsert``, a single
INSERT ... ON CONFLICT (device_name) DO UPDATE statement. The unique
constraint on ``device_name`` makes concurrent upserts for the same name
safe without application-level locking. ``updated_at`` only ever moves
forward, so an older sighting committing late cannot rewind it.

CHANGELOG:
- 2026-10-18: Treat unreachable-server errors as PersistenceError (STORY-112)
- 2026-10-18: Add register_device, list_devices and latest_device (STORY-110)
- 2026-10-18: Initial creation (STORY-104)

TODO:
- None
"""

import contextlib
import logging
from datetime import UTC, datetime

from sqlalchemy import case, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.db.models import DEVICE_NAME_COLUMN_LEN, DeviceRegistration
from backend.src.db.session import STORE_ERRORS
from telemetry.src.errors import PersistenceError, ValidationError
from telemetry.src.models import RegistrationResult
from telemetry.src.normalizer import is_registrable_name

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _insert_for(db: AsyncSession):  # noqa: ANN202
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise PersistenceError(f"upsert not supported on dialect {dialect!r}") from None


async def _upsert(db: AsyncSession, name: str, now: datetime) -> RegistrationResult:
    """Insert *name* or advance its ``updated_at`` to *now*.

    Raises:
        PersistenceError: On any database failure; the session is rolled back.
    """
    insert = _insert_for(db)
    stmt = insert(DeviceRegistration).values(
        device_name=name,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["device_name"],
        set_={
            "updated_at": case(
                (
                    stmt.excluded.updated_at > DeviceRegistration.updated_at,
                    stmt.excluded.updated_at,
                ),
                else_=DeviceRegistration.updated_at,
            ),
        },
    ).returning(
        DeviceRegistration.id,
        DeviceRegistration.device_name,
        DeviceRegistration.created_at,
        DeviceRegistration.updated_at,
    )

    try:
        result = await db.execute(stmt)
        row = result.one()
        await db.commit()
    except STORE_ERRORS as exc:
        with contextlib.suppress(*STORE_ERRORS):
            await db.rollback()
        raise PersistenceError(f"device registration upsert failed for {name!r}: {exc}") from exc

    return RegistrationResult.model_validate(row)


async def reconcile(
    db: AsyncSession,
    name: str | None,
    now: datetime | None = None,
) -> RegistrationResult | None:
    """Record a telemetry sighting of unit *name*.

    Names that are empty, the ``unknown`` sentinel, or wider than the
    ``device_name`` column are skipped and ``None`` is returned; callers
    are expected to filter first, this only guards the store.

    Args:
        db: Async SQLAlchemy session.
        name: Unit name reported in telemetry.
        now: Sighting time; defaults to the current UTC time.

    Returns:
        RegistrationResult | None: The upserted row, or None when skipped.

    Raises:
        PersistenceError: If the store rejected the write.
    """
    if not is_registrable_name(name):
        return None
    name = name.strip()  # type: ignore[union-attr]
    if len(name) > DEVICE_NAME_COLUMN_LEN:
        logger.warning(
            "Skipping registration of over-long unit name (%d chars): %.40s...",
            len(name),
            name,
        )
        return None

    result = await _upsert(db, name, now or datetime.now(UTC))
    logger.debug("Reconciled device %s (id=%d)", result.device_name, result.id)
    return result


async def register_device(
    db: AsyncSession,
    name: str,
    now: datetime | None = None,
) -> RegistrationResult:
    """Register *name* on explicit operator request.

    Args:
        db: Async SQLAlchemy session.
        name: Unit name entered by the operator.
        now: Registration time; defaults to the current UTC time.

    Returns:
        RegistrationResult: The upserted row.

    Raises:
        ValidationError: If the trimmed name is empty or too long.
        PersistenceError: If the store rejected the write.
    """
    trimmed = (name or "").strip()
    if not trimmed or len(trimmed) > DEVICE_NAME_COLUMN_LEN:
        raise ValidationError(
            "invalid device name",
            [f"device_name: must be 1-{DEVICE_NAME_COLUMN_LEN} characters"],
        )

    result = await _upsert(db, trimmed, now or datetime.now(UTC))
    logger.info("Registered device %s (id=%d)", result.device_name, result.id)
    return result


async def list_devices(db: AsyncSession) -> list[RegistrationResult]:
    """Return every registration ordered by name."""
    try:
        rows = await db.scalars(
            select(DeviceRegistration).order_by(DeviceRegistration.device_name)
        )
    except STORE_ERRORS as exc:
        raise PersistenceError(f"listing devices failed: {exc}") from exc
    return [RegistrationResult.model_validate(row) for row in rows]


async def latest_device(db: AsyncSession) -> RegistrationResult | None:
    """Return the most recently seen or registered device, if any."""
    try:
        row = await db.scalar(
            select(DeviceRegistration)
            .order_by(DeviceRegistration.updated_at.desc(), DeviceRegistration.id.desc())
            .limit(1)
        )
    except STORE_ERRORS as exc:
        raise PersistenceError(f"reading latest device failed: {exc}") from exc
    return RegistrationResult.model_validate(row) if row is not None else None
