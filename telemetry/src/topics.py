"""
Broker topic layout for the solar tracker.

Layout under a configurable root (default ``solar-tracker``)::

    <root>/<unit>/telemetry              unit -> subscribers, QoS 1
    <root>/<unit>/status                 unit liveness, QoS 1
    <root>/<unit_id>/control             operator -> unit commands, QoS 1
    <root>/dashboard/<client_id>/status  dashboard last-will

Routing is by the final topic level, never by substring search.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-103)
"""

from __future__ import annotations

from enum import StrEnum

DEFAULT_TOPIC_ROOT = "solar-tracker"

_WILDCARDS = ("+", "#")


class TopicKind(StrEnum):
    """Classification of an inbound topic by its final level."""

    TELEMETRY = "telemetry"
    STATUS = "status"
    CONTROL = "control"
    OTHER = "other"


def _check_level(value: str, what: str) -> str:
    if not value or "/" in value or any(w in value for w in _WILDCARDS):
        raise ValueError(f"invalid {what} for topic level: {value!r}")
    return value


def validate_topic_root(root: str) -> str:
    """Return *root* unchanged if it is usable as a topic prefix.

    Raises:
        ValueError: If the root is empty, has leading/trailing slashes, or
            contains MQTT wildcard characters.
    """
    if not root or root.startswith("/") or root.endswith("/"):
        raise ValueError(f"invalid topic root: {root!r}")
    if any(w in root for w in _WILDCARDS):
        raise ValueError(f"topic root must not contain wildcards: {root!r}")
    return root


def telemetry_filter(root: str = DEFAULT_TOPIC_ROOT) -> str:
    """Wildcard filter matching every unit's telemetry topic."""
    return f"{root}/+/{TopicKind.TELEMETRY}"


def status_filter(root: str = DEFAULT_TOPIC_ROOT) -> str:
    """Wildcard filter matching every unit's status topic."""
    return f"{root}/+/{TopicKind.STATUS}"


def subscription_filters(root: str = DEFAULT_TOPIC_ROOT) -> tuple[str, str]:
    """The two topic families both subscribers listen to."""
    return telemetry_filter(root), status_filter(root)


def control_topic(unit_id: str, root: str = DEFAULT_TOPIC_ROOT) -> str:
    """Command topic addressed to one physical unit."""
    return f"{root}/{_check_level(unit_id, 'unit id')}/{TopicKind.CONTROL}"


def dashboard_status_topic(client_id: str, root: str = DEFAULT_TOPIC_ROOT) -> str:
    """Last-will topic announcing a dashboard client going offline."""
    return f"{root}/dashboard/{_check_level(client_id, 'client id')}/{TopicKind.STATUS}"


def classify_topic(topic: str) -> TopicKind:
    """Classify *topic* by its final level."""
    suffix = topic.rsplit("/", 1)[-1]
    try:
        return TopicKind(suffix)
    except ValueError:
        return TopicKind.OTHER


def unit_from_topic(topic: str) -> str | None:
    """Return the unit level of ``<root>/<unit>/<kind>``, or None."""
    levels = topic.split("/")
    if len(levels) < 3:
        return None
    return levels[-2] or None
