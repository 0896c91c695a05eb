"""
Unit tests for topic construction and routing.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-103)

TODO:
- None
"""

import pytest

from telemetry.src.topics import (
    TopicKind,
    classify_topic,
    control_topic,
    dashboard_status_topic,
    subscription_filters,
    unit_from_topic,
    validate_topic_root,
)


class TestTopicLayout:
    """Topic strings under the default and a custom root."""

    def test_subscription_filters(self) -> None:
        """Both wildcard families are derived from the root."""
        assert subscription_filters() == (
            "solar-tracker/+/telemetry",
            "solar-tracker/+/status",
        )
        assert subscription_filters("site-2") == ("site-2/+/telemetry", "site-2/+/status")

    def test_control_topic(self) -> None:
        """Commands are addressed by hardware unit id."""
        assert control_topic("esp32-a1") == "solar-tracker/esp32-a1/control"

    def test_dashboard_status_topic(self) -> None:
        """The dashboard last-will lives under the dashboard level."""
        assert (
            dashboard_status_topic("solar-dashboard-ab12")
            == "solar-tracker/dashboard/solar-dashboard-ab12/status"
        )

    @pytest.mark.parametrize("bad", ["", "a/b", "+", "unit#"])
    def test_control_topic_rejects_unsafe_ids(self, bad: str) -> None:
        """Unit ids that would change the topic shape are rejected."""
        with pytest.raises(ValueError):
            control_topic(bad)

    @pytest.mark.parametrize("bad", ["", "/root", "root/", "a/+", "#"])
    def test_invalid_roots(self, bad: str) -> None:
        """Roots with wildcards or edge slashes are rejected."""
        with pytest.raises(ValueError):
            validate_topic_root(bad)


class TestTopicRouting:
    """Classification is by the final level only."""

    @pytest.mark.parametrize(
        ("topic", "kind"),
        [
            ("solar-tracker/u1/telemetry", TopicKind.TELEMETRY),
            ("solar-tracker/u1/status", TopicKind.STATUS),
            ("solar-tracker/u1/control", TopicKind.CONTROL),
            ("solar-tracker/telemetry/status", TopicKind.STATUS),
            ("solar-tracker/u1/telemetry-old", TopicKind.OTHER),
            ("telemetry", TopicKind.TELEMETRY),
        ],
    )
    def test_classify(self, topic: str, kind: TopicKind) -> None:
        """Substrings elsewhere in the topic do not affect routing."""
        assert classify_topic(topic) is kind

    def test_unit_from_topic(self) -> None:
        """The unit level is the one before the kind."""
        assert unit_from_topic("solar-tracker/u1/status") == "u1"
        assert unit_from_topic("status") is None
