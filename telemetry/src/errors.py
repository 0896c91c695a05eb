"""
Error taxonomy shared by the ingestion service and the dashboard client.

Every error raised by this project derives from :class:`SyncError` so loop
boundaries can catch the whole family without swallowing programming errors.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-101)
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all telemetry synchronization errors."""


class TransportError(SyncError):
    """Connect, publish or subscribe failure at the broker transport.

    Recoverable via reconnect; never fatal to the process.
    """


class DecodeError(SyncError):
    """Inbound payload could not be decoded into a JSON object."""


class PersistenceError(SyncError):
    """The store was unavailable or rejected a write."""


class ValidationError(SyncError):
    """A command payload failed range or shape validation.

    Args:
        message: Summary of the failure.
        issues: One human-readable entry per offending field.
    """

    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        super().__init__(message)
        self.issues: list[str] = list(issues or [])


class NotConnectedError(SyncError):
    """A command was attempted while the transport was not connected."""


class UnknownUnitError(SyncError):
    """A command was attempted before any telemetry identified the unit."""
