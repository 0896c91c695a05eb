"""
Pure normalizer that converts loosely typed tracker payloads into a TelemetryRecord.

The tracker firmware publishes a flat JSON object roughly every 0.35 s. Field
types drift between firmware revisions (numbers as strings, booleans as
``"1"``/``"0"``), so every field is coerced individually and a field that
cannot be coerced becomes ``None`` plus an entry in ``NormalizeResult.issues``.

``normalize`` is total over arbitrary JSON-shaped input: it never raises. The
only step that can fail is ``decode_payload`` (bytes -> JSON object), which
raises :class:`~telemetry.src.errors.DecodeError`.

Identity compatibility: older firmware reports the unit name as
``deviceName``, newer firmware as ``solarName``. Both map onto the single
canonical ``TelemetryRecord.unit_name``; ``solarName`` wins when both are set.

CHANGELOG:
- 2026-10-18: Add payload_preview for bounded decode-failure logging (STORY-105)
- 2026-10-18: Initial creation (STORY-102)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Mapping

from telemetry.src.errors import DecodeError
from telemetry.src.models import NormalizeResult, TelemetryRecord

logger = logging.getLogger(__name__)

UNKNOWN_UNIT_NAME = "unknown"
"""Sentinel the firmware reports before a unit name has been assigned."""

PREVIEW_LIMIT = 200
"""Maximum characters of a raw payload echoed into logs."""

# ---------------------------------------------------------------------------
# Mapping from TelemetryRecord field name -> wire key, grouped by coercion.
# ---------------------------------------------------------------------------

_INT_FIELDS: dict[str, str] = {
    "top": "top",
    "left": "left",
    "right": "right",
    "avg": "avg",
    "horizontal_error": "horizontalError",
    "vertical_error": "verticalError",
    "tilt_angle": "tiltAngle",
    "pan_angle": "panAngle",
    "pan_target": "panTarget",
}

_FLOAT_FIELDS: dict[str, str] = {
    "power_w": "powerW",
    "power_actual_w": "powerActualW",
    "temp_c": "tempC",
    "battery_pct": "batteryPct",
    "battery_v": "batteryV",
    "efficiency": "efficiency",
    "energy_wh": "energyWh",
    "energy_kwh": "energyKWh",
    "co2_kg": "co2kg",
    "trees": "trees",
    "phones": "phones",
    "phone_minutes": "phoneMinutes",
    "pesos": "pesos",
    "grid_price": "gridPrice",
}

_BOOL_FIELDS: dict[str, str] = {
    "manual": "manual",
    "steady": "steady",
    "wifi_connected": "wifiConnected",
}

_TEXT_FIELDS: dict[str, str] = {
    "unit_id": "device_id",
    "wifi_ssid": "wifiSSID",
}

_IDENTITY_KEYS: tuple[str, ...] = ("solarName", "deviceName")
"""Wire keys carrying the unit name, in order of preference."""


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def to_float(value: object) -> float | None:
    """Coerce a number or numeric string to a finite float.

    Booleans, non-numeric strings, NaN and infinities all yield ``None``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            result = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def to_int(value: object) -> int | None:
    """Coerce to an integer, truncating any fractional part toward zero."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = to_float(value)
    return None if number is None else math.trunc(number)


def to_bool(value: object) -> bool | None:
    """Coerce ``true/false``, ``"true"/"false"``, ``"1"/"0"`` and ``1/0``.

    Anything else yields ``None`` (tri-state: unknown).
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1"):
            return True
        if text in ("false", "0"):
            return False
        return None
    if isinstance(value, int | float) and value in (0, 1):
        return bool(value)
    return None


def to_text(value: object) -> str | None:
    """Coerce a string (trimmed) or integer to text; empty text yields ``None``."""
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def is_registrable_name(name: object) -> bool:
    """Return True when *name* identifies a real unit.

    Empty/whitespace names and the firmware's ``"unknown"`` placeholder (in
    any letter case) are not registrable.
    """
    if not isinstance(name, str):
        return False
    trimmed = name.strip()
    return bool(trimmed) and trimmed.casefold() != UNKNOWN_UNIT_NAME


def payload_preview(raw: bytes | str, limit: int = PREVIEW_LIMIT) -> str:
    """Return at most *limit* characters of a raw payload for logging."""
    if isinstance(raw, bytes):
        text = raw[: limit * 4].decode("utf-8", errors="replace")
    else:
        text = raw
    if len(text) > limit:
        return text[:limit] + "..."
    return text


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_payload(raw: bytes | str) -> dict[str, object]:
    """Decode a raw MQTT payload into a JSON object.

    Raises:
        DecodeError: If the payload is not UTF-8, not JSON, or not an object.
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        decoded = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise DecodeError(
            f"payload is not a JSON object (got {type(decoded).__name__})"
        )
    return decoded


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _coerce_group(
    payload: Mapping[str, object],
    field_map: dict[str, str],
    coerce: Callable[[object], object],
    fields: dict[str, object],
    issues: list[str],
) -> None:
    for field_name, wire_key in field_map.items():
        raw = payload.get(wire_key)
        if raw is None:
            continue
        value = coerce(raw)
        # Blank strings are treated as absent, not malformed.
        if value is None and not (isinstance(raw, str) and not raw.strip()):
            issues.append(f"{wire_key}: cannot coerce {raw!r}")
        fields[field_name] = value


def extract_unit_name(payload: Mapping[str, object]) -> str | None:
    """Return the canonical unit name from whichever identity key is set."""
    for key in _IDENTITY_KEYS:
        name = to_text(payload.get(key))
        if name:
            return name
    return None


def normalize(payload: object) -> NormalizeResult:
    """Convert a decoded payload into a typed :class:`TelemetryRecord`.

    This is a **pure function**: no I/O, no clock, no exceptions. Unknown
    keys are ignored. A non-mapping payload yields an empty record with a
    single issue.

    Args:
        payload: The decoded JSON value (normally a dict).

    Returns:
        A :class:`NormalizeResult` holding the best-effort record and the
        list of fields that were present but malformed.
    """
    if not isinstance(payload, Mapping):
        return NormalizeResult(
            record=TelemetryRecord(),
            issues=[f"payload is not a JSON object (got {type(payload).__name__})"],
        )

    fields: dict[str, object] = {}
    issues: list[str] = []

    _coerce_group(payload, _INT_FIELDS, to_int, fields, issues)
    _coerce_group(payload, _FLOAT_FIELDS, to_float, fields, issues)
    _coerce_group(payload, _BOOL_FIELDS, to_bool, fields, issues)
    _coerce_group(payload, _TEXT_FIELDS, to_text, fields, issues)

    fields["unit_name"] = extract_unit_name(payload)
    if fields["unit_name"] is None:
        for key in _IDENTITY_KEYS:
            raw = payload.get(key)
            if raw is not None and not isinstance(raw, str):
                issues.append(f"{key}: cannot coerce {raw!r}")

    return NormalizeResult(record=TelemetryRecord(**fields), issues=issues)
