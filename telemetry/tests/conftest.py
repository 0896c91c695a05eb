"""
Shared test fixtures for the telemetry wire layer.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-102)
"""

from __future__ import annotations

import pytest

from telemetry.tests.fakes import FakeTransport


@pytest.fixture()
def fake_transport() -> FakeTransport:
    """A connected in-memory transport."""
    transport = FakeTransport()
    transport.connected = True
    return transport


@pytest.fixture()
def full_payload() -> dict[str, object]:
    """A complete telemetry message as current firmware publishes it."""
    return {
        "solarName": "Solar Unit A",
        "device_id": "esp32-a1b2c3",
        "top": 2048,
        "left": 1900,
        "right": 2100,
        "avg": 2016,
        "horizontalError": -200,
        "verticalError": 32,
        "tiltAngle": 45,
        "panAngle": 120,
        "panTarget": 118,
        "manual": False,
        "steady": True,
        "powerW": 12.5,
        "powerActualW": 11.8,
        "tempC": 36.2,
        "batteryPct": 85.5,
        "batteryV": 12.6,
        "efficiency": 94.4,
        "energyWh": 1250.5,
        "energyKWh": 1.2505,
        "co2kg": 0.89,
        "trees": 0.04,
        "phones": 104,
        "phoneMinutes": 6250,
        "pesos": 14.99,
        "gridPrice": 11.99,
        "wifiSSID": "Farm-AP",
        "wifiConnected": True,
    }
