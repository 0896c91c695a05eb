"""
Dashboard client configuration loaded from DASHBOARD_-prefixed environment
variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings

from dashboard.src.window import DEFAULT_CAPACITY
from telemetry.src.topics import DEFAULT_TOPIC_ROOT, validate_topic_root
from telemetry.src.transport import parse_broker_url


class DashboardSettings(BaseSettings):
    """Dashboard client configuration.

    Attributes:
        mqtt_broker_url: Broker URL; websocket URLs without a path get
            ``/mqtt`` appended when parsed.
        mqtt_username: Broker username.
        mqtt_password: Broker password.
        topic_root: Topic root the trackers publish under.
        mqtt_keepalive_s: Keep-alive ping interval in seconds.
        mqtt_connect_timeout_s: Connect / publish acknowledgment timeout.
        mqtt_reconnect_period_s: Initial reconnect delay in seconds.
        history_capacity: Samples kept per sensor channel for charting.
    """

    mqtt_broker_url: str
    mqtt_username: str = ""
    mqtt_password: str = ""
    topic_root: str = DEFAULT_TOPIC_ROOT
    mqtt_keepalive_s: int = 60
    mqtt_connect_timeout_s: float = 15.0
    mqtt_reconnect_period_s: float = 10.0
    history_capacity: int = DEFAULT_CAPACITY

    @field_validator("mqtt_broker_url")
    @classmethod
    def broker_url_must_be_supported(cls, v: str) -> str:
        """Reject URLs paho cannot connect to."""
        parse_broker_url(v)
        return v

    @field_validator("topic_root")
    @classmethod
    def topic_root_must_be_literal(cls, v: str) -> str:
        """Topic root must be a plain prefix without wildcards."""
        return validate_topic_root(v)

    @field_validator("mqtt_keepalive_s")
    @classmethod
    def keepalive_must_be_reasonable(cls, v: int) -> int:
        """Validate keep-alive is between 5 s and one hour."""
        if v < 5 or v > 3600:
            raise ValueError("DASHBOARD_MQTT_KEEPALIVE_S must be between 5 and 3600")
        return v

    @field_validator("mqtt_connect_timeout_s", "mqtt_reconnect_period_s")
    @classmethod
    def durations_must_be_positive(cls, v: float) -> float:
        """Validate timeouts and periods are positive."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("history_capacity")
    @classmethod
    def capacity_must_be_bounded(cls, v: int) -> int:
        """Validate the history capacity is between 1 and 10000."""
        if v < 1 or v > 10_000:
            raise ValueError("DASHBOARD_HISTORY_CAPACITY must be between 1 and 10000")
        return v

    model_config = {
        "env_prefix": "DASHBOARD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }
