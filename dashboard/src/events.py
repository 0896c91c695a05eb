"""
Typed events emitted by the gated connection, and a minimal observer list.

Listeners register with ``EventBus.subscribe`` and get back a callable that
deregisters them. Events are delivered synchronously, in registration order,
on the event loop thread that handled the transport callback.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from telemetry.src.models import TelemetryRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryReceived:
    """Telemetry from the registered unit was accepted into the view state."""

    record: TelemetryRecord


@dataclass(frozen=True)
class ConnectionStateChanged:
    """The gated connection moved to a new state."""

    state: str
    connected: bool


@dataclass(frozen=True)
class UnitRejected:
    """Telemetry arrived from a unit other than the registered one."""

    reported: str | None
    expected: str


@dataclass(frozen=True)
class ErrorRaised:
    """A transport or subscription error the operator should see."""

    message: str


DashboardEvent = TelemetryReceived | ConnectionStateChanged | UnitRejected | ErrorRaised
Listener = Callable[[DashboardEvent], None]


class EventBus:
    """Ordered list of event listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that removes it again."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: DashboardEvent) -> None:
        """Deliver *event* to every listener.

        A failing listener is logged and skipped; it never prevents delivery
        to the others or breaks the connection that published the event.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Dashboard listener failed on %s", type(event).__name__)
