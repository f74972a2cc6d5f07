"""Command handlers: cloud commands to Ditto live messages on the local broker."""

from __future__ import annotations

import json
import logging
from typing import Iterable, Optional, Tuple

from .. import constants
from ..core.errors import CodecError, DeserializationError, NoMappingFound, SerializationError
from ..core.models import (
    HEADER_CONTENT_TYPE,
    HEADER_CORRELATION_ID,
    CommandRequest,
    ConnectionInfo,
    DittoEnvelope,
    JSONValue,
    OutboundMessage,
)
from ..core.protocols import Codec, MappingCatalog
from ..core.utils import compact_json
from ..mapping.catalog import CommandMapping, MappingProperties
from .base import create_command_topic, create_ditto_topic, new_message_id

LOGGER = logging.getLogger(__name__)

KEY_CORRELATION_ID = "correlationId"
KEY_PAYLOAD = "payload"


def wrap_payload(properties: MappingProperties, payload: JSONValue) -> JSONValue:
    """Wrap ``payload`` under the rule's value key, if it has one.

    String payloads holding a JSON object are embedded as that object; any
    other payload is embedded as is.
    """
    if not properties.value_key:
        return payload
    value = payload
    if isinstance(payload, str):
        try:
            parsed = json.loads(payload)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            value = parsed
    return {properties.value_key: value}


class ThingsCommandHandler:
    """Maps cloud commands to Ditto live messages using the mapper catalog."""

    name = "command_things_handler"

    def __init__(
        self,
        connection: ConnectionInfo,
        catalog: MappingCatalog,
        codec: Optional[Codec] = None,
    ) -> None:
        self._connection = connection
        self._catalog = catalog
        self._codec = codec

    def handle(self, request: CommandRequest) -> Optional[OutboundMessage]:
        command = request.command
        mapping = self._catalog.command_mapping(command.command_name)
        properties = mapping.mapping_properties
        thing_device_id = self._connection.thing_device_id
        LOGGER.debug(
            "Mapping command %s (cId=%s) to action %s",
            command.command_name,
            command.correlation_id,
            properties.action,
        )

        envelope = DittoEnvelope(
            topic=create_ditto_topic(properties, thing_device_id),
            path=properties.path,
            headers={
                HEADER_CONTENT_TYPE: constants.DITTO_CONTENT_TYPE,
                HEADER_CORRELATION_ID: command.correlation_id,
            },
            value=self._build_value(mapping, request),
        )

        try:
            payload = compact_json(envelope.as_dict())
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                "cannot serialize C2D message", command_name=command.command_name
            ) from exc

        return OutboundMessage(
            topic=create_command_topic(properties, thing_device_id, command.correlation_id),
            payload=payload,
            message_id=new_message_id(),
        )

    def _build_value(self, mapping: CommandMapping, request: CommandRequest) -> JSONValue:
        command = request.command
        if not mapping.proto_descriptor:
            wrapped = wrap_payload(mapping.mapping_properties, command.payload)
            if mapping.mapping_properties.retain_correlation_id:
                return {KEY_CORRELATION_ID: command.correlation_id, KEY_PAYLOAD: wrapped}
            return wrapped

        if self._codec is None:
            raise CodecError(
                f"no codec configured for protobuf command '{command.command_name}'",
                command_name=command.command_name,
            )
        if not isinstance(command.payload, str):
            raise CodecError(
                f"payload of command '{command.command_name}' must be an encoded string",
                command_name=command.command_name,
            )
        decoded = self._codec.unmarshal(command.command_name, command.payload)
        try:
            value = json.loads(decoded)
        except ValueError as exc:
            raise DeserializationError(
                f"cannot deserialize decoded payload of command '{command.command_name}'",
                command_name=command.command_name,
            ) from exc
        if not isinstance(value, dict):
            raise DeserializationError(
                f"decoded payload of command '{command.command_name}' is not a JSON object",
                command_name=command.command_name,
            )
        return value


class PassthroughCommandHandler:
    """Forwards allow-listed cloud commands to ``{appId}/{cmdName}`` unchanged."""

    name = "command_passthrough_handler"

    def __init__(self, command_names: Iterable[str]) -> None:
        self._command_names: Tuple[str, ...] = tuple(
            name.strip() for name in command_names if name.strip()
        )

    @property
    def command_names(self) -> Tuple[str, ...]:
        return self._command_names

    def handle(self, request: CommandRequest) -> Optional[OutboundMessage]:
        command = request.command
        if command.command_name not in self._command_names:
            raise NoMappingFound(
                f"cloud command name '{command.command_name}' is not supported",
                command_name=command.command_name,
            )
        return OutboundMessage(
            topic=f"{command.application_id}/{command.command_name}",
            payload=request.message.payload,
            message_id=new_message_id(),
        )
