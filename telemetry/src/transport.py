"""
Broker transport: a thin asyncio-facing wrapper around the paho-mqtt client.

paho runs its network loop on a background thread and owns connection retry
(``reconnect_delay_set``). This wrapper never runs a retry loop of its own;
it only translates paho callbacks into :class:`TransportEvent` values and
inbound messages, and hands both to the owner's handlers on the asyncio event
loop via ``call_soon_threadsafe``. Handlers therefore always run on the loop
thread, one at a time, in the order paho delivered them.

``Transport`` is the structural interface the subscriber and dashboard code
depend on, so tests can drive both with an in-memory fake.

CHANGELOG:
- 2026-10-18: Drop the OFFLINE event; paho has no separate offline callback (STORY-112)
- 2026-10-18: Add websocket path defaulting for dashboard brokers (STORY-111)
- 2026-10-18: Initial creation (STORY-103)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from telemetry.src.errors import TransportError

logger = logging.getLogger(__name__)


class TransportEvent(StrEnum):
    """Connection lifecycle events surfaced by a transport."""

    CONNECT = "connect"
    RECONNECT = "reconnect"
    CLOSE = "close"
    ERROR = "error"


EventHandler = Callable[[TransportEvent, str | None], None]
MessageHandler = Callable[[str, bytes], None]


@dataclass(frozen=True)
class LastWill:
    """Message the broker publishes on our behalf if we vanish."""

    topic: str
    payload: str
    qos: int = 1
    retain: bool = False


@dataclass(frozen=True)
class BrokerAddress:
    """Parsed broker URL.

    Attributes:
        host: Broker hostname.
        port: Broker port.
        transport: paho transport name, ``"tcp"`` or ``"websockets"``.
        tls: True for ``mqtts``/``ssl``/``wss`` URLs.
        path: Websocket path (ignored for TCP).
    """

    host: str
    port: int
    transport: str
    tls: bool
    path: str = "/mqtt"


# scheme -> (paho transport, tls, default port)
_SCHEMES: dict[str, tuple[str, bool, int]] = {
    "mqtt": ("tcp", False, 1883),
    "tcp": ("tcp", False, 1883),
    "mqtts": ("tcp", True, 8883),
    "ssl": ("tcp", True, 8883),
    "ws": ("websockets", False, 80),
    "wss": ("websockets", True, 443),
}

SUPPORTED_SCHEMES = frozenset(_SCHEMES)


def parse_broker_url(url: str) -> BrokerAddress:
    """Parse ``mqtt://``, ``mqtts://``, ``ws://`` or ``wss://`` broker URLs.

    Websocket URLs whose path contains neither ``/mqtt`` nor ``/ws`` get
    ``/mqtt`` appended, the path most hosted brokers serve MQTT on.

    Raises:
        ValueError: On an unsupported scheme or a missing host.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ValueError(
            f"unsupported broker URL scheme {scheme!r}; "
            f"expected one of {sorted(SUPPORTED_SCHEMES)}"
        )
    if not parts.hostname:
        raise ValueError(f"broker URL has no host: {url!r}")

    transport, tls, default_port = _SCHEMES[scheme]
    path = parts.path or ""
    if transport == "websockets" and "/mqtt" not in path and "/ws" not in path:
        path = path.rstrip("/") + "/mqtt"

    return BrokerAddress(
        host=parts.hostname,
        port=parts.port or default_port,
        transport=transport,
        tls=tls,
        path=path or "/mqtt",
    )


class Transport(Protocol):
    """Structural interface of a broker connection."""

    client_id: str

    @property
    def is_connected(self) -> bool: ...

    def set_handlers(self, on_event: EventHandler, on_message: MessageHandler) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def subscribe(self, topic: str, qos: int = 1) -> None: ...

    async def publish(self, topic: str, payload: str, qos: int = 1) -> None: ...


class MqttTransport:
    """paho-mqtt backed :class:`Transport`.

    Args:
        address: Parsed broker address.
        client_id: Stable client identity; reused across reconnects.
        username: Broker username (used only together with a password).
        password: Broker password.
        keepalive_s: MQTT keep-alive ping interval.
        connect_timeout_s: Connect handshake timeout; also bounds how long
            ``publish`` waits for the broker's acknowledgment.
        reconnect_period_s: Initial delay between reconnect attempts; paho
            backs off up to six times this value.
        will: Optional last-will message.

    Usage::

        transport = MqttTransport(parse_broker_url(url), client_id="solar-1")
        transport.set_handlers(on_event, on_message)
        await transport.start()
        ...
        await transport.stop()
    """

    def __init__(
        self,
        address: BrokerAddress,
        *,
        client_id: str,
        username: str = "",
        password: str = "",
        keepalive_s: int = 60,
        connect_timeout_s: float = 10.0,
        reconnect_period_s: float = 5.0,
        will: LastWill | None = None,
    ) -> None:
        self.client_id = client_id
        self._address = address
        self._keepalive_s = keepalive_s
        self._publish_timeout_s = connect_timeout_s
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_event: EventHandler | None = None
        self._on_message: MessageHandler | None = None
        self._connected = False
        self._stopping = False

        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            transport=address.transport,
        )
        if address.transport == "websockets":
            client.ws_set_options(path=address.path)
        if address.tls:
            client.tls_set()
        if username and password:
            client.username_pw_set(username, password)
        if will is not None:
            client.will_set(will.topic, will.payload, qos=will.qos, retain=will.retain)
        client.connect_timeout = connect_timeout_s
        min_delay = max(1, int(reconnect_period_s))
        client.reconnect_delay_set(min_delay=min_delay, max_delay=min_delay * 6)

        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        self._client = client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        """True between a successful handshake and the next disconnect."""
        return self._connected

    def set_handlers(self, on_event: EventHandler, on_message: MessageHandler) -> None:
        """Register the owner's lifecycle and message handlers."""
        self._on_event = on_event
        self._on_message = on_message

    async def start(self) -> None:
        """Begin connecting in the background; returns without waiting.

        Raises:
            TransportError: If the connection parameters are rejected.
        """
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        try:
            self._client.connect_async(
                self._address.host,
                self._address.port,
                keepalive=self._keepalive_s,
            )
        except (OSError, ValueError) as exc:
            raise TransportError(f"cannot start MQTT connection: {exc}") from exc
        self._client.loop_start()
        logger.info(
            "MQTT connecting to %s:%s (%s, client_id=%s)",
            self._address.host,
            self._address.port,
            self._address.transport,
            self.client_id,
        )

    async def stop(self) -> None:
        """Disconnect and stop the network thread."""
        self._stopping = True
        await asyncio.to_thread(self._shutdown)
        self._connected = False

    def subscribe(self, topic: str, qos: int = 1) -> None:
        """Subscribe to *topic*; repeating a subscription is harmless.

        Raises:
            TransportError: If the client refuses the request.
        """
        result, _mid = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(
                f"subscribe to {topic} failed: {mqtt.error_string(result)}"
            )

    async def publish(self, topic: str, payload: str, qos: int = 1) -> None:
        """Publish and wait for the broker's delivery acknowledgment.

        Raises:
            TransportError: If the message cannot be queued, the client
                disconnects, or no acknowledgment arrives in time.
        """
        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")
        try:
            await asyncio.to_thread(info.wait_for_publish, self._publish_timeout_s)
        except (RuntimeError, ValueError) as exc:
            raise TransportError(f"publish to {topic} failed: {exc}") from exc
        if not info.is_published():
            raise TransportError(
                f"publish to {topic} not acknowledged within {self._publish_timeout_s}s"
            )

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _shutdown(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()

    def _handle_connect(self, client, userdata, flags, reason_code, properties) -> None:  # noqa: ANN001
        if reason_code.is_failure:
            self._emit(TransportEvent.ERROR, f"connect refused: {reason_code}")
            return
        self._connected = True
        self._emit(TransportEvent.CONNECT, None)

    def _handle_connect_fail(self, client, userdata) -> None:  # noqa: ANN001
        self._emit(TransportEvent.ERROR, "connection attempt failed")

    def _handle_disconnect(
        self, client, userdata, disconnect_flags, reason_code, properties  # noqa: ANN001
    ) -> None:
        self._connected = False
        self._emit(TransportEvent.CLOSE, str(reason_code))
        # paho retries on its own unless we asked to stop.
        if not self._stopping:
            self._emit(TransportEvent.RECONNECT, None)

    def _handle_message(self, client, userdata, message) -> None:  # noqa: ANN001
        loop = self._loop
        handler = self._on_message
        if loop is None or handler is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(handler, message.topic, bytes(message.payload))

    def _emit(self, event: TransportEvent, detail: str | None) -> None:
        loop = self._loop
        handler = self._on_event
        if loop is None or handler is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(handler, event, detail)
