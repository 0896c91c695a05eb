"""
Unit tests for broker URL parsing and the paho-mqtt transport wrapper.

paho's Client is replaced with a MagicMock; the tests drive its callbacks
directly, the way the network thread would.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-103)

TODO:
- None
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from telemetry.src.errors import TransportError
from telemetry.src.transport import (
    LastWill,
    MqttTransport,
    TransportEvent,
    parse_broker_url,
)

# ---------------------------------------------------------------------------
# Test: parse_broker_url
# ---------------------------------------------------------------------------


class TestParseBrokerUrl:
    """Scheme, port and websocket path handling."""

    def test_mqtt_default_port(self) -> None:
        address = parse_broker_url("mqtt://broker.local")
        assert (address.host, address.port, address.transport, address.tls) == (
            "broker.local",
            1883,
            "tcp",
            False,
        )

    def test_mqtts_explicit_port(self) -> None:
        address = parse_broker_url("mqtts://broker.example.com:8884")
        assert address.port == 8884
        assert address.tls is True

    def test_ws_path_appended(self) -> None:
        """Websocket URLs without an MQTT path get /mqtt."""
        address = parse_broker_url("wss://broker.example.com:8084")
        assert address.transport == "websockets"
        assert address.path == "/mqtt"
        assert address.tls is True

    def test_ws_existing_path_kept(self) -> None:
        address = parse_broker_url("ws://broker.local:8083/ws")
        assert address.path == "/ws"
        assert address.port == 8083

    @pytest.mark.parametrize("url", ["http://broker", "broker:1883", "mqtt://", ""])
    def test_rejects_unsupported(self, url: str) -> None:
        with pytest.raises(ValueError):
            parse_broker_url(url)


# ---------------------------------------------------------------------------
# Test: MqttTransport
# ---------------------------------------------------------------------------


@pytest.fixture()
def paho_client() -> MagicMock:
    """Patch paho's Client class and return the instance it would build."""
    with patch("telemetry.src.transport.mqtt.Client") as client_cls:
        client = MagicMock()
        client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
        client_cls.return_value = client
        yield client


def _transport(url: str = "mqtt://broker.local", **kwargs: object) -> MqttTransport:
    return MqttTransport(parse_broker_url(url), client_id="solar-test", **kwargs)


class TestMqttTransportSetup:
    """Client configuration at construction."""

    def test_credentials_only_with_password(self, paho_client: MagicMock) -> None:
        """A username without a password is not sent."""
        _transport(username="user")
        paho_client.username_pw_set.assert_not_called()

        _transport(username="user", password="secret")
        paho_client.username_pw_set.assert_called_once_with("user", "secret")

    def test_will_and_reconnect(self, paho_client: MagicMock) -> None:
        """The last will and retry window are handed to paho."""
        will = LastWill(topic="solar-tracker/dashboard/x/status", payload='{"status":"offline"}')
        _transport(will=will, reconnect_period_s=5.0, connect_timeout_s=10.0)

        paho_client.will_set.assert_called_once_with(
            will.topic, will.payload, qos=1, retain=False
        )
        paho_client.reconnect_delay_set.assert_called_once_with(min_delay=5, max_delay=30)
        assert paho_client.connect_timeout == 10.0

    def test_websocket_options(self, paho_client: MagicMock) -> None:
        """Websocket transports get the MQTT path and TLS."""
        _transport("wss://broker.example.com")
        paho_client.ws_set_options.assert_called_once_with(path="/mqtt")
        paho_client.tls_set.assert_called_once()


class TestMqttTransportLifecycle:
    """Callbacks are forwarded onto the event loop."""

    @pytest.mark.asyncio
    async def test_start_connects_in_background(self, paho_client: MagicMock) -> None:
        transport = _transport(keepalive_s=60)
        await transport.start()

        paho_client.connect_async.assert_called_once_with("broker.local", 1883, keepalive=60)
        paho_client.loop_start.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_rejected(self, paho_client: MagicMock) -> None:
        paho_client.connect_async.side_effect = ValueError("bad host")
        with pytest.raises(TransportError):
            await _transport().start()

    @pytest.mark.asyncio
    async def test_connect_and_disconnect_events(self, paho_client: MagicMock) -> None:
        """connect -> CONNECT; unexpected disconnect -> CLOSE then RECONNECT."""
        events: list[TransportEvent] = []
        transport = _transport()
        transport.set_handlers(lambda event, detail: events.append(event), MagicMock())
        await transport.start()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False), None)
        await asyncio.sleep(0)
        assert transport.is_connected is True

        transport._handle_disconnect(paho_client, None, {}, "unspecified", None)
        await asyncio.sleep(0)

        assert events == [TransportEvent.CONNECT, TransportEvent.CLOSE, TransportEvent.RECONNECT]
        assert transport.is_connected is False

    @pytest.mark.asyncio
    async def test_refused_connect_is_error(self, paho_client: MagicMock) -> None:
        events: list[TransportEvent] = []
        transport = _transport()
        transport.set_handlers(lambda event, detail: events.append(event), MagicMock())
        await transport.start()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=True), None)
        await asyncio.sleep(0)

        assert events == [TransportEvent.ERROR]
        assert transport.is_connected is False

    @pytest.mark.asyncio
    async def test_every_event_has_a_paho_source(self, paho_client: MagicMock) -> None:
        """Each lifecycle event is produced by some paho callback."""
        events: set[TransportEvent] = set()
        transport = _transport()
        transport.set_handlers(lambda event, detail: events.add(event), MagicMock())
        await transport.start()

        transport._handle_connect(paho_client, None, {}, MagicMock(is_failure=False), None)
        transport._handle_connect_fail(paho_client, None)
        transport._handle_disconnect(paho_client, None, {}, "unspecified", None)
        await asyncio.sleep(0)

        assert events == set(TransportEvent)

    @pytest.mark.asyncio
    async def test_message_forwarded(self, paho_client: MagicMock) -> None:
        on_message = MagicMock()
        transport = _transport()
        transport.set_handlers(MagicMock(), on_message)
        await transport.start()

        message = MagicMock(topic="solar-tracker/u1/telemetry", payload=b'{"top": 1}')
        transport._handle_message(paho_client, None, message)
        await asyncio.sleep(0)

        on_message.assert_called_once_with("solar-tracker/u1/telemetry", b'{"top": 1}')

    @pytest.mark.asyncio
    async def test_stop_suppresses_reconnect(self, paho_client: MagicMock) -> None:
        events: list[TransportEvent] = []
        transport = _transport()
        transport.set_handlers(lambda event, detail: events.append(event), MagicMock())
        await transport.start()

        await transport.stop()
        transport._handle_disconnect(paho_client, None, {}, "normal", None)
        await asyncio.sleep(0)

        paho_client.disconnect.assert_called_once()
        paho_client.loop_stop.assert_called_once()
        assert events == [TransportEvent.CLOSE]


class TestMqttTransportPublish:
    """QoS 1 acknowledgment handling."""

    @pytest.mark.asyncio
    async def test_publish_waits_for_ack(self, paho_client: MagicMock) -> None:
        info = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        info.is_published.return_value = True
        paho_client.publish.return_value = info

        await _transport(connect_timeout_s=3.0).publish("t/u/control", "{}", qos=1)

        paho_client.publish.assert_called_once_with("t/u/control", "{}", qos=1)
        info.wait_for_publish.assert_called_once_with(3.0)

    @pytest.mark.asyncio
    async def test_publish_not_acknowledged(self, paho_client: MagicMock) -> None:
        info = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        info.is_published.return_value = False
        paho_client.publish.return_value = info

        with pytest.raises(TransportError):
            await _transport().publish("t/u/control", "{}")

    @pytest.mark.asyncio
    async def test_publish_rejected(self, paho_client: MagicMock) -> None:
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)

        with pytest.raises(TransportError):
            await _transport().publish("t/u/control", "{}")

    def test_subscribe_failure(self, paho_client: MagicMock) -> None:
        paho_client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        with pytest.raises(TransportError):
            _transport().subscribe("solar-tracker/+/telemetry")
