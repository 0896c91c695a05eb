"""
Pydantic models for decoded tracker telemetry and operator commands.

``TelemetryRecord`` is the strongly typed, all-optional view of one telemetry
snapshot after normalization. ``CommandMessage`` is the sparse operator ->
unit control payload and carries its own range validation. Wire names are
camelCase; Python attributes are snake_case with the wire name as alias.

CHANGELOG:
- 2026-10-18: Reject booleans for gridPrice (STORY-112)
- 2026-10-18: Add RegistrationResult for the registry service (STORY-104)
- 2026-10-18: Initial creation (STORY-102)
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GRID_PRICE_MAX = 100_000
"""Exclusive upper bound for a commanded grid price (cents/kWh)."""

DEVICE_NAME_MAX_LEN = 24
"""Longest unit name the tracker firmware accepts."""


class TelemetryRecord(BaseModel):
    """One normalized telemetry snapshot from the solar tracker.

    Every field is optional: absence or a malformed value on the wire maps
    to ``None`` rather than failing the record.

    Attributes:
        unit_name: Canonical unit identity (``solarName``/``deviceName``).
        unit_id: Hardware identifier used to address commands.
        top: Top light sensor ADC count (0-4095).
        left: Left light sensor ADC count.
        right: Right light sensor ADC count.
        avg: Average of the light sensors.
        horizontal_error: Left/right sensor imbalance.
        vertical_error: Top/bottom sensor imbalance.
        tilt_angle: Current tilt servo angle in degrees.
        pan_angle: Current pan servo angle in degrees.
        pan_target: Pan angle the controller is steering to.
        manual: True when the tracker is in manual mode.
        steady: True when the tracker has settled.
        power_w: Estimated panel power in watts.
        power_actual_w: Measured panel power in watts.
        temp_c: Board temperature in Celsius.
        battery_pct: Battery state of charge in percent.
        battery_v: Battery voltage.
        efficiency: Conversion efficiency in percent.
        energy_wh: Cumulative energy in watt-hours.
        energy_kwh: Cumulative energy in kilowatt-hours.
        co2_kg: CO2 avoided in kilograms.
        trees: Equivalent trees planted.
        phones: Equivalent phone charges.
        phone_minutes: Equivalent phone minutes.
        pesos: Money saved at the configured grid price.
        grid_price: Grid price the unit is currently using.
        wifi_ssid: SSID the unit is joined to.
        wifi_connected: True when the unit reports a WiFi link.
    """

    model_config = ConfigDict(frozen=True)

    unit_name: str | None = None
    unit_id: str | None = None
    top: int | None = None
    left: int | None = None
    right: int | None = None
    avg: int | None = None
    horizontal_error: int | None = None
    vertical_error: int | None = None
    tilt_angle: int | None = None
    pan_angle: int | None = None
    pan_target: int | None = None
    manual: bool | None = None
    steady: bool | None = None
    power_w: float | None = None
    power_actual_w: float | None = None
    temp_c: float | None = None
    battery_pct: float | None = None
    battery_v: float | None = None
    efficiency: float | None = None
    energy_wh: float | None = None
    energy_kwh: float | None = None
    co2_kg: float | None = None
    trees: float | None = None
    phones: float | None = None
    phone_minutes: float | None = None
    pesos: float | None = None
    grid_price: float | None = None
    wifi_ssid: str | None = None
    wifi_connected: bool | None = None


class NormalizeResult(BaseModel):
    """Outcome of normalizing one payload.

    ``record`` is always present (possibly empty); ``issues`` lists every
    field that was present on the wire but could not be coerced.
    """

    record: TelemetryRecord
    issues: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when every present field was coerced cleanly."""
        return not self.issues


class StatusMessage(BaseModel):
    """Liveness message published on a status topic."""

    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    device_id: str | None = None


class CommandMessage(BaseModel):
    """Sparse operator -> unit control payload.

    At least one key must be set. ``device_name`` is trimmed before its
    length is checked.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    grid_price: float | None = Field(
        default=None, alias="gridPrice", gt=0, lt=GRID_PRICE_MAX
    )
    device_name: str | None = Field(
        default=None, alias="deviceName", max_length=DEVICE_NAME_MAX_LEN
    )
    start_charging: bool | None = Field(default=None, alias="startCharging")

    @field_validator("grid_price", mode="before")
    @classmethod
    def _reject_bool_price(cls, v: object) -> object:
        # bool is an int subclass; pydantic would coerce True to 1.0.
        if isinstance(v, bool):
            raise ValueError("gridPrice must be a number")
        return v

    @field_validator("device_name", mode="before")
    @classmethod
    def _trim_device_name(cls, v: object) -> object:
        if v is None:
            return v
        return str(v).strip()

    @model_validator(mode="after")
    def _require_one_key(self) -> CommandMessage:
        if (
            self.grid_price is None
            and self.device_name is None
            and self.start_charging is None
        ):
            raise ValueError("no control parameters provided")
        return self

    def to_payload(self) -> dict[str, object]:
        """Return the wire mapping, mirroring ``deviceName`` as ``solarName``."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if self.device_name is not None:
            payload["solarName"] = self.device_name
        return payload


class RegistrationResult(BaseModel):
    """Row returned by a device registration upsert."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    device_name: str
    created_at: datetime
    updated_at: datetime
