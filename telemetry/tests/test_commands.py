"""
Unit tests for the command channel.

Tests verify:
- Out-of-range, boolean-priced and empty commands raise ValidationError before any publish.
- Missing connection or unit id fail fast without touching the transport.
- A valid command is published once, at QoS 1, on the unit's control topic.
- deviceName is trimmed and mirrored as solarName.
- Publish failures propagate as TransportError.

CHANGELOG:
- 2026-10-18: Cover boolean gridPrice (STORY-112)
- 2026-10-18: Initial creation (STORY-107)

TODO:
- None
"""

from __future__ import annotations

import json

import pytest

from telemetry.src.commands import CommandChannel, build_command
from telemetry.src.errors import (
    NotConnectedError,
    TransportError,
    UnknownUnitError,
    ValidationError,
)
from telemetry.src.models import CommandMessage
from telemetry.tests.fakes import FakeTransport

# ---------------------------------------------------------------------------
# Test: validation
# ---------------------------------------------------------------------------


class TestBuildCommand:
    """Local validation of the sparse command mapping."""

    @pytest.mark.parametrize("price", [0, -1, 100000, 150000])
    def test_grid_price_out_of_range(self, price: float) -> None:
        """gridPrice must be strictly between 0 and 100000."""
        with pytest.raises(ValidationError) as exc_info:
            build_command({"gridPrice": price})
        assert any("gridPrice" in issue for issue in exc_info.value.issues)

    @pytest.mark.parametrize("price", [True, False])
    def test_grid_price_rejects_bool(self, price: bool) -> None:
        """A boolean is not a price, even though bool subclasses int."""
        with pytest.raises(ValidationError) as exc_info:
            build_command({"gridPrice": price})
        assert any("gridPrice" in issue for issue in exc_info.value.issues)

    def test_device_name_too_long(self) -> None:
        """deviceName longer than 24 characters after trimming is rejected."""
        with pytest.raises(ValidationError):
            build_command({"deviceName": "x" * 25})

    def test_device_name_trimmed_before_length_check(self) -> None:
        """Surrounding whitespace does not count toward the limit."""
        command = build_command({"deviceName": "  " + "x" * 24 + "  "})
        assert command.device_name == "x" * 24

    def test_empty_command_rejected(self) -> None:
        """A command with no keys never reaches the wire."""
        with pytest.raises(ValidationError) as exc_info:
            build_command({})
        assert "no control parameters provided" in " ".join(exc_info.value.issues)

    def test_unknown_key_rejected(self) -> None:
        """Typos are not silently dropped."""
        with pytest.raises(ValidationError):
            build_command({"gridprice": 12})

    def test_snake_case_accepted(self) -> None:
        """Python callers may use attribute names."""
        assert build_command({"start_charging": True}).start_charging is True

    def test_payload_mirrors_solar_name(self) -> None:
        """deviceName is sent under both identity keys."""
        payload = CommandMessage(deviceName="Unit B").to_payload()
        assert payload == {"deviceName": "Unit B", "solarName": "Unit B"}


# ---------------------------------------------------------------------------
# Test: send_command
# ---------------------------------------------------------------------------


class TestSendCommand:
    """Readiness checks and the QoS 1 publish."""

    @pytest.mark.asyncio
    async def test_out_of_range_never_published(self, fake_transport: FakeTransport) -> None:
        """gridPrice=150000 fails validation with no transport interaction."""
        channel = CommandChannel(fake_transport)

        with pytest.raises(ValidationError):
            await channel.send_command("esp32-a1", {"gridPrice": 150000})
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_valid_command_published(self, fake_transport: FakeTransport) -> None:
        """gridPrice=20.5 is published at QoS 1 on the control topic."""
        channel = CommandChannel(fake_transport)

        message = await channel.send_command("esp32-a1", {"gridPrice": 20.5})

        assert message.grid_price == 20.5
        assert len(fake_transport.published) == 1
        topic, payload, qos = fake_transport.published[0]
        assert topic == "solar-tracker/esp32-a1/control"
        assert json.loads(payload) == {"gridPrice": 20.5}
        assert qos == 1

    @pytest.mark.asyncio
    async def test_not_connected(self, fake_transport: FakeTransport) -> None:
        """A disconnected transport fails fast, even for invalid commands."""
        fake_transport.connected = False
        channel = CommandChannel(fake_transport)

        with pytest.raises(NotConnectedError):
            await channel.send_command("esp32-a1", {"gridPrice": 150000})
        assert fake_transport.published == []

    @pytest.mark.parametrize("unit_id", [None, ""])
    @pytest.mark.asyncio
    async def test_unknown_unit(self, fake_transport: FakeTransport, unit_id: str | None) -> None:
        """No unit id yet means no send."""
        channel = CommandChannel(fake_transport)

        with pytest.raises(UnknownUnitError):
            await channel.send_command(unit_id, {"startCharging": True})
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_unsafe_unit_id(self, fake_transport: FakeTransport) -> None:
        """A unit id containing topic separators is treated as unknown."""
        channel = CommandChannel(fake_transport)

        with pytest.raises(UnknownUnitError):
            await channel.send_command("a/b", {"startCharging": True})

    @pytest.mark.asyncio
    async def test_custom_root(self, fake_transport: FakeTransport) -> None:
        """The control topic follows the configured root."""
        channel = CommandChannel(fake_transport, topic_root="site-2")

        await channel.send_command("u9", {"deviceName": " Roof "})

        topic, payload, _ = fake_transport.published[0]
        assert topic == "site-2/u9/control"
        assert json.loads(payload) == {"deviceName": "Roof", "solarName": "Roof"}

    @pytest.mark.asyncio
    async def test_publish_failure_propagates(self, fake_transport: FakeTransport) -> None:
        """An unacknowledged publish surfaces as TransportError."""
        fake_transport.publish_error = TransportError("not acknowledged")
        channel = CommandChannel(fake_transport)

        with pytest.raises(TransportError):
            await channel.send_command("esp32-a1", {"startCharging": False})
