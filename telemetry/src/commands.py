"""
Operator -> unit command channel.

``send_command`` checks readiness (connected transport, known unit), validates
the command locally, serializes it, publishes it at QoS 1 on the unit's
control topic and resolves only after the broker acknowledges delivery.
Nothing reaches the transport unless every check passes, and no local state
is mutated; callers update their own state once the await returns.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-107)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from pydantic import ValidationError as PydanticValidationError

from telemetry.src.errors import NotConnectedError, UnknownUnitError, ValidationError
from telemetry.src.models import CommandMessage
from telemetry.src.topics import DEFAULT_TOPIC_ROOT, control_topic
from telemetry.src.transport import Transport

logger = logging.getLogger(__name__)


def _describe(error: dict) -> str:
    where = ".".join(str(part) for part in error.get("loc", ())) or "command"
    return f"{where}: {error.get('msg', 'invalid value')}"


def build_command(command: CommandMessage | Mapping[str, object]) -> CommandMessage:
    """Validate a command given as a model or as a wire/attribute mapping.

    Raises:
        ValidationError: If any field is out of range or no field is set.
    """
    if isinstance(command, CommandMessage):
        return command
    try:
        return CommandMessage.model_validate(dict(command))
    except PydanticValidationError as exc:
        issues = [_describe(err) for err in exc.errors()]
        raise ValidationError("invalid control command", issues) from exc


class CommandChannel:
    """Publishes validated commands to a unit over a shared transport.

    Args:
        transport: The connected broker transport.
        topic_root: Topic root the unit listens under.
    """

    def __init__(self, transport: Transport, topic_root: str = DEFAULT_TOPIC_ROOT) -> None:
        self._transport = transport
        self._topic_root = topic_root

    async def send_command(
        self,
        unit_id: str | None,
        command: CommandMessage | Mapping[str, object],
    ) -> CommandMessage:
        """Send *command* to *unit_id* and wait for the QoS 1 acknowledgment.

        Args:
            unit_id: Hardware id from the latest telemetry (``device_id``).
            command: The command as a model or a mapping.

        Returns:
            The validated command that was sent.

        Raises:
            NotConnectedError: The transport is not connected.
            UnknownUnitError: No unit id is known yet.
            ValidationError: The command failed validation.
            TransportError: The publish failed or was not acknowledged.
        """
        if not self._transport.is_connected:
            raise NotConnectedError("MQTT not connected")
        if not unit_id:
            raise UnknownUnitError("unit id not available; no telemetry received yet")

        message = build_command(command)
        try:
            topic = control_topic(unit_id, self._topic_root)
        except ValueError as exc:
            raise UnknownUnitError(str(exc)) from exc
        payload = json.dumps(message.to_payload(), separators=(",", ":"))

        await self._transport.publish(topic, payload, qos=1)
        logger.info("Control command published to %s: %s", topic, payload)
        return message
