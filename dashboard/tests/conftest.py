"""
Shared test fixtures for the dashboard client.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path

import pytest

from dashboard.src.config import DashboardSettings

_ALL_DASHBOARD_ENV_VARS = (
    "DASHBOARD_MQTT_BROKER_URL",
    "DASHBOARD_MQTT_USERNAME",
    "DASHBOARD_MQTT_PASSWORD",
    "DASHBOARD_TOPIC_ROOT",
    "DASHBOARD_MQTT_KEEPALIVE_S",
    "DASHBOARD_MQTT_CONNECT_TIMEOUT_S",
    "DASHBOARD_MQTT_RECONNECT_PERIOD_S",
    "DASHBOARD_HISTORY_CAPACITY",
)


@pytest.fixture(autouse=True)
def _clean_dashboard_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all dashboard env vars and isolate from .env files before each test."""
    for var in _ALL_DASHBOARD_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def settings() -> DashboardSettings:
    return DashboardSettings(mqtt_broker_url="wss://broker.example.com:8084")

