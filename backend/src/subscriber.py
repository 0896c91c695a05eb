"""
Backend subscriber: broker connection lifecycle and telemetry ingestion.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING
                                     |               |
                                     +-> SHUTTING_DOWN -> STOPPED

The transport owns connection retry; the subscriber only reacts to its
lifecycle events and updates ``state``. On every successful handshake both
topic families are (re)subscribed at QoS 1, which is idempotent at the broker.

Inbound messages arrive on the event loop one at a time. Each telemetry
message is stamped with its arrival time and processed in its own task
(decode -> normalize -> reconcile), so a slow store never stalls delivery.
Decode and persistence failures are logged and counted; they never stop the
loop or change the connection state.

CHANGELOG:
- 2026-10-18: Optional graceful drain on stop (STORY-112)
- 2026-10-18: Add health snapshot counters (STORY-110)
- 2026-10-18: Initial creation (STORY-105)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from backend.src.services.registry import reconcile
from telemetry.src.errors import DecodeError, PersistenceError, TransportError
from telemetry.src.models import StatusMessage
from telemetry.src.normalizer import decode_payload, is_registrable_name, normalize, payload_preview
from telemetry.src.topics import (
    DEFAULT_TOPIC_ROOT,
    TopicKind,
    classify_topic,
    subscription_filters,
    unit_from_topic,
)
from telemetry.src.transport import MqttTransport, Transport, TransportEvent, parse_broker_url

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from backend.src.config import BackendSettings

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "solar-sync-backend"

TransportFactory = Callable[[str], Transport]
"""Builds a transport for a given client id."""


class SubscriberState(StrEnum):
    """Observable connection state of the backend subscriber."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


_LOST_EVENTS = frozenset(
    {
        TransportEvent.CLOSE,
        TransportEvent.ERROR,
        TransportEvent.RECONNECT,
    }
)
_FINAL_STATES = frozenset({SubscriberState.SHUTTING_DOWN, SubscriberState.STOPPED})


def new_client_id() -> str:
    """Return a fresh backend client identity."""
    return f"{CLIENT_ID_PREFIX}-{secrets.token_hex(4)}"


def mqtt_transport_factory(settings: BackendSettings) -> TransportFactory:
    """Return a factory building paho-backed transports from *settings*."""
    address = parse_broker_url(settings.mqtt_broker_url)

    def _build(client_id: str) -> Transport:
        return MqttTransport(
            address,
            client_id=client_id,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            keepalive_s=settings.mqtt_keepalive_s,
            connect_timeout_s=settings.mqtt_connect_timeout_s,
            reconnect_period_s=settings.mqtt_reconnect_period_s,
        )

    return _build


class Subscriber:
    """Long-running broker subscriber feeding the device registry.

    Args:
        session_factory: Async session factory for the registry store.
        transport_factory: Builds the broker transport; called once.
        topic_root: Topic root the trackers publish under.
        client_id: Client identity; generated when omitted.
        clock: Arrival-time source; defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport_factory: TransportFactory,
        *,
        topic_root: str = DEFAULT_TOPIC_ROOT,
        client_id: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client_id = client_id or new_client_id()
        self.state = SubscriberState.DISCONNECTED
        self.received = 0
        self.reconciled = 0
        self.dropped = 0
        self._session_factory = session_factory
        self._transport_factory = transport_factory
        self._topic_root = topic_root
        self._clock = clock or (lambda: datetime.now(UTC))
        self._transport: Transport | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect to the broker; returns once the connection attempt is underway.

        Raises:
            TransportError: If the transport rejects its connection parameters.
        """
        if self.state is not SubscriberState.DISCONNECTED:
            logger.warning("Subscriber start ignored in state %s", self.state)
            return

        if self._transport is None:
            self._transport = self._transport_factory(self.client_id)
            self._transport.set_handlers(self._on_event, self._on_message)

        self._set_state(SubscriberState.CONNECTING)
        try:
            await self._transport.start()
        except TransportError:
            self._set_state(SubscriberState.DISCONNECTED)
            raise

    async def stop(self, drain: bool = False) -> None:
        """Close the transport and enter STOPPED.

        Args:
            drain: Let in-flight messages finish first; otherwise they are
                cancelled. New messages are dropped either way.
        """
        if self.state is SubscriberState.STOPPED:
            return
        self._set_state(SubscriberState.SHUTTING_DOWN)
        if drain:
            await self.drain()

        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if self._transport is not None:
            try:
                await self._transport.stop()
            except TransportError as exc:
                logger.warning("Error closing MQTT transport: %s", exc)
        self._set_state(SubscriberState.STOPPED)

    async def drain(self) -> None:
        """Wait until every in-flight message has been processed.

        Used by ``stop(drain=True)``; also lets callers wait for ingestion to
        settle without stopping.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def health(self) -> dict[str, object]:
        """Snapshot of state and counters for the health endpoint."""
        return {
            "state": str(self.state),
            "client_id": self.client_id,
            "connected": self.state is SubscriberState.CONNECTED,
            "received": self.received,
            "reconciled": self.reconciled,
            "dropped": self.dropped,
        }

    # ------------------------------------------------------------------
    # Transport callbacks (event loop thread)
    # ------------------------------------------------------------------

    def _set_state(self, state: SubscriberState) -> None:
        if state is not self.state:
            logger.info("Subscriber state %s -> %s", self.state, state)
            self.state = state

    def _on_event(self, event: TransportEvent, detail: str | None) -> None:
        if self.state in _FINAL_STATES:
            return

        if event is TransportEvent.CONNECT:
            self._subscribe_all()
        elif event in _LOST_EVENTS:
            if event is TransportEvent.ERROR:
                logger.error("MQTT error: %s", detail or "unknown")
            self._set_state(SubscriberState.RECONNECTING)

    def _subscribe_all(self) -> None:
        assert self._transport is not None
        for topic_filter in subscription_filters(self._topic_root):
            try:
                self._transport.subscribe(topic_filter, qos=1)
            except TransportError as exc:
                logger.error("Subscription failed, waiting for reconnect: %s", exc)
                self._set_state(SubscriberState.RECONNECTING)
                return
            logger.info("Subscribed to %s", topic_filter)
        self._set_state(SubscriberState.CONNECTED)

    def _on_message(self, topic: str, payload: bytes) -> None:
        if self.state is not SubscriberState.CONNECTED:
            self.dropped += 1
            return
        self.received += 1
        task = asyncio.get_running_loop().create_task(
            self._process(topic, payload, self._clock())
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def _process(self, topic: str, payload: bytes, arrived_at: datetime) -> None:
        try:
            kind = classify_topic(topic)
            if kind is TopicKind.TELEMETRY:
                await self._handle_telemetry(topic, payload, arrived_at)
            elif kind is TopicKind.STATUS:
                self._handle_status(topic, payload)
            else:
                logger.debug("Ignoring message on unrouted topic %s", topic)
        except DecodeError as exc:
            self.dropped += 1
            logger.warning(
                "Dropping undecodable message on %s (%s): %s",
                topic,
                exc,
                payload_preview(payload),
            )
        except PersistenceError as exc:
            self.dropped += 1
            logger.error("Registry update failed for message on %s: %s", topic, exc)
        except Exception:
            self.dropped += 1
            logger.exception("Unexpected error handling message on %s", topic)

    async def _handle_telemetry(self, topic: str, payload: bytes, arrived_at: datetime) -> None:
        result = normalize(decode_payload(payload))
        if not result.ok:
            logger.debug("Telemetry on %s had uncoercible fields: %s", topic, result.issues)

        name = result.record.unit_name
        if not is_registrable_name(name):
            self.dropped += 1
            logger.debug("Telemetry on %s has no registrable unit name", topic)
            return

        async with self._session_factory() as db:
            registration = await reconcile(db, name, now=arrived_at)
        if registration is not None:
            self.reconciled += 1
            logger.debug("Telemetry from %s reconciled at %s", name, arrived_at.isoformat())

    def _handle_status(self, topic: str, payload: bytes) -> None:
        data = decode_payload(payload)
        try:
            status = StatusMessage.model_validate(data)
        except PydanticValidationError as exc:
            raise DecodeError(f"malformed status message: {exc.error_count()} errors") from exc
        logger.info(
            "Status from %s: %s",
            status.device_id or unit_from_topic(topic) or "?",
            status.status or "?",
        )
