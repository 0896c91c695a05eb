"""
Gated realtime connection for the dashboard.

The connection exists only while the operator has committed a registered
unit name ("the gate"). Inbound telemetry is accepted only when the unit's
self-reported identity matches that name; everything else is discarded
without touching the view state.

States::

    GATED -> CONNECTING -> CONNECTED <-> RECONNECTING
      ^                        |               |
      +------ open_gate ---- CLOSED <----------+  (close_gate)

Identity matching trims surrounding whitespace on both sides and then
compares exactly (case-sensitive).

The client identity is created once per ``GatedConnection`` and reused for
every gate opening and reconnect, so the broker sees one logical client for
the whole session. A last-will message announces the client offline if it
vanishes without closing the gate.

CHANGELOG:
- 2026-10-18: Track charging_started after a successful startCharging (STORY-111)
- 2026-10-18: Initial creation (STORY-108)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from dashboard.src.config import DashboardSettings
from dashboard.src.events import (
    ConnectionStateChanged,
    ErrorRaised,
    EventBus,
    TelemetryReceived,
    UnitRejected,
)
from dashboard.src.window import DEFAULT_CAPACITY, SlidingWindow
from telemetry.src.commands import CommandChannel
from telemetry.src.errors import DecodeError, NotConnectedError, TransportError
from telemetry.src.models import CommandMessage, TelemetryRecord
from telemetry.src.normalizer import decode_payload, normalize, payload_preview
from telemetry.src.topics import (
    TopicKind,
    classify_topic,
    dashboard_status_topic,
    subscription_filters,
)
from telemetry.src.transport import (
    LastWill,
    MqttTransport,
    Transport,
    TransportEvent,
    parse_broker_url,
)

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "solar-dashboard"
SENSOR_CHANNELS = ("top", "left", "right")
DEFAULT_ANGLE = 90
OFFLINE_PAYLOAD = json.dumps({"status": "offline"})

TransportFactory = Callable[[str, LastWill], Transport]
"""Builds a transport for a client id and its last-will message."""


class GateState(StrEnum):
    """Lifecycle state of the gated connection."""

    GATED = "gated"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_INACTIVE = frozenset({GateState.GATED, GateState.CLOSED})


def _windows(capacity: int) -> dict[str, SlidingWindow]:
    return {channel: SlidingWindow(capacity) for channel in SENSOR_CHANNELS}


@dataclass
class RealtimeState:
    """Everything the live view renders, derived from accepted telemetry."""

    last_telemetry: TelemetryRecord | None = None
    unit_id: str | None = None
    wifi_ssid: str | None = None
    wifi_connected: bool | None = None
    manual: bool = False
    tilt: int = DEFAULT_ANGLE
    pan: int = DEFAULT_ANGLE
    charging_started: bool = False
    sensor_history: dict[str, SlidingWindow] = field(
        default_factory=lambda: _windows(DEFAULT_CAPACITY)
    )
    connected: bool = False
    error: str | None = None

    @classmethod
    def initial(cls, capacity: int = DEFAULT_CAPACITY) -> RealtimeState:
        return cls(sensor_history=_windows(capacity))


def new_client_id() -> str:
    """Return a fresh dashboard client identity."""
    return f"{CLIENT_ID_PREFIX}-{secrets.token_hex(4)}"


def mqtt_transport_factory(settings: DashboardSettings) -> TransportFactory:
    """Return a factory building paho-backed transports from *settings*."""
    address = parse_broker_url(settings.mqtt_broker_url)

    def _build(client_id: str, will: LastWill) -> Transport:
        return MqttTransport(
            address,
            client_id=client_id,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            keepalive_s=settings.mqtt_keepalive_s,
            connect_timeout_s=settings.mqtt_connect_timeout_s,
            reconnect_period_s=settings.mqtt_reconnect_period_s,
            will=will,
        )

    return _build


class GatedConnection:
    """Connection manager owning the dashboard's realtime state.

    Args:
        settings: Dashboard configuration.
        transport_factory: Builds the broker transport; defaults to paho.
        client_id: Session client identity; generated when omitted.
        bus: Event bus to publish on; a private one is created when omitted.

    Usage::

        conn = GatedConnection(DashboardSettings())
        unsubscribe = conn.bus.subscribe(render)
        await conn.open_gate("Solar Unit A")
        await conn.send_command({"gridPrice": 20.5})
        await conn.close_gate()
    """

    def __init__(
        self,
        settings: DashboardSettings,
        *,
        transport_factory: TransportFactory | None = None,
        client_id: str | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.client_id = client_id or new_client_id()
        self.bus = bus or EventBus()
        self.state = GateState.GATED
        self.registered_name: str | None = None
        self._settings = settings
        self._factory = transport_factory or mqtt_transport_factory(settings)
        self._transport: Transport | None = None
        self._channel: CommandChannel | None = None
        self.realtime = RealtimeState.initial(settings.history_capacity)

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def transport(self) -> Transport | None:
        return self._transport

    async def open_gate(self, name: str | None) -> None:
        """Commit *name* as the registered unit and connect.

        An empty name closes the gate. Committing a different name while
        connected keeps the connection but resets the view state, since it
        described the previous unit.

        Raises:
            TransportError: If the transport rejects its connection parameters.
        """
        trimmed = (name or "").strip()
        if not trimmed:
            await self.close_gate()
            return

        if self.state not in _INACTIVE:
            if trimmed != self.registered_name:
                logger.info("Registered unit changed to %s", trimmed)
                self.registered_name = trimmed
                self._reset_realtime(keep_connection=True)
            return

        self.registered_name = trimmed
        self._reset_realtime()
        will = LastWill(
            topic=dashboard_status_topic(self.client_id, self._settings.topic_root),
            payload=OFFLINE_PAYLOAD,
            qos=1,
            retain=False,
        )
        transport = self._factory(self.client_id, will)
        transport.set_handlers(self._on_event, self._on_message)
        self._transport = transport
        self._channel = CommandChannel(transport, self._settings.topic_root)
        self._set_state(GateState.CONNECTING)

        try:
            await transport.start()
        except TransportError as exc:
            self.realtime.error = str(exc)
            self.bus.publish(ErrorRaised(str(exc)))
            await self._teardown()
            self._set_state(GateState.CLOSED)
            raise

    async def close_gate(self) -> None:
        """Tear down the connection and reset all derived state."""
        self.registered_name = None
        await self._teardown()
        self._reset_realtime()
        if self.state is not GateState.GATED:
            self._set_state(GateState.CLOSED)

    async def send_command(
        self, command: CommandMessage | Mapping[str, object]
    ) -> CommandMessage:
        """Send *command* to the unit last seen in accepted telemetry.

        Raises:
            NotConnectedError: The gate is closed or the broker is not connected.
            UnknownUnitError: No accepted telemetry has named the unit yet.
            ValidationError: The command failed validation.
            TransportError: The publish was not acknowledged.
        """
        if self._channel is None or self.state in _INACTIVE:
            raise NotConnectedError("MQTT not connected")
        message = await self._channel.send_command(self.realtime.unit_id, command)
        if message.start_charging:
            self.realtime.charging_started = True
        return message

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        transport, self._transport, self._channel = self._transport, None, None
        if transport is None:
            return
        try:
            await transport.stop()
        except TransportError as exc:
            logger.warning("Error closing dashboard transport: %s", exc)

    def _reset_realtime(self, keep_connection: bool = False) -> None:
        connected = self.realtime.connected if keep_connection else False
        self.realtime = RealtimeState.initial(self._settings.history_capacity)
        self.realtime.connected = connected

    def _set_state(self, state: GateState) -> None:
        if state is self.state:
            return
        logger.info("Dashboard connection %s -> %s", self.state, state)
        self.state = state
        self.bus.publish(ConnectionStateChanged(str(state), self.realtime.connected))

    def _on_event(self, event: TransportEvent, detail: str | None) -> None:
        if self.state in _INACTIVE or self._transport is None:
            return

        if event is TransportEvent.CONNECT:
            for topic_filter in subscription_filters(self._settings.topic_root):
                try:
                    self._transport.subscribe(topic_filter, qos=1)
                except TransportError as exc:
                    self.realtime.error = f"Subscription error: {exc}"
                    self.bus.publish(ErrorRaised(self.realtime.error))
                    return
            self.realtime.connected = True
            self.realtime.error = None
            self._set_state(GateState.CONNECTED)
            return

        if event is TransportEvent.ERROR:
            self.realtime.error = detail or "MQTT error"
            self.bus.publish(ErrorRaised(self.realtime.error))
        self.realtime.connected = False
        self._set_state(GateState.RECONNECTING)

    def _on_message(self, topic: str, payload: bytes) -> None:
        if self.state is not GateState.CONNECTED or self.registered_name is None:
            return
        if classify_topic(topic) is not TopicKind.TELEMETRY:
            return

        try:
            data = decode_payload(payload)
        except DecodeError as exc:
            logger.warning("Dropping undecodable telemetry (%s): %s", exc, payload_preview(payload))
            return

        record = normalize(data).record
        if record.unit_name != self.registered_name:
            self.bus.publish(UnitRejected(record.unit_name, self.registered_name))
            return

        self._apply(record)
        self.bus.publish(TelemetryReceived(record))

    def _apply(self, record: TelemetryRecord) -> None:
        state = self.realtime
        state.last_telemetry = record
        state.error = None
        if record.unit_id:
            state.unit_id = record.unit_id
        state.wifi_ssid = record.wifi_ssid
        state.wifi_connected = record.wifi_connected
        if record.manual is not None:
            state.manual = record.manual
        if record.tilt_angle is not None:
            state.tilt = record.tilt_angle
        pan = record.pan_target if record.pan_target is not None else record.pan_angle
        if pan is not None:
            state.pan = pan
        for channel in SENSOR_CHANNELS:
            value = getattr(record, channel)
            if value is not None:
                state.sensor_history[channel].append(value)
