"""Telemetry handlers: Ditto events from the local broker to cloud telemetry."""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from .. import constants
from ..core.errors import CodecError, DeserializationError, SerializationError
from ..core.models import (
    CloudTelemetryMessage,
    ConnectionInfo,
    DittoEnvelope,
    InboundMessage,
    JSONValue,
    OutboundMessage,
)
from ..core.protocols import Codec, MappingCatalog
from ..core.utils import canonical_json, compact_json, unix_timestamp_ms
from ..mapping.catalog import SERIALIZATION_JSON_STRING
from ..mapping.interpreter import TemplateInterpreter
from ..mapping.matcher import TelemetryMatch, match_telemetry_rule
from .base import create_telemetry_topic, new_message_id

LOGGER = logging.getLogger(__name__)

KEY_CORRELATION_ID = "correlationId"


class ThingsTelemetryHandler:
    """Maps Ditto events to cloud telemetry messages using the mapper catalog."""

    name = "things_telemetry_handler"

    def __init__(
        self,
        connection: ConnectionInfo,
        catalog: MappingCatalog,
        codec: Optional[Codec] = None,
        *,
        interpreter: Optional[TemplateInterpreter] = None,
        clock: Callable[[], int] = unix_timestamp_ms,
    ) -> None:
        self._connection = connection
        self._catalog = catalog
        self._codec = codec
        self._interpreter = interpreter or TemplateInterpreter(clock=clock)
        self._clock = clock

    def topics(self) -> Sequence[str]:
        return constants.MAPPED_TELEMETRY_TOPICS

    def handle(self, message: InboundMessage) -> Optional[OutboundMessage]:
        envelope = DittoEnvelope.from_payload(message.payload)
        match = match_telemetry_rule(self._catalog, envelope.topic, envelope.path)
        mapping = match.mapping

        value: JSONValue = envelope.value
        correlation_id = ""
        if mapping.value_template is not None:
            source = _source_object(envelope)
            converted = self._interpreter.interpret(mapping, source)
            if converted is None:
                LOGGER.debug(
                    "Dropping Ditto message on topic %s (%s/%s)",
                    envelope.topic,
                    match.message_type,
                    match.message_sub_type,
                )
                return None
            correlation_id = _correlation_id(converted) or _correlation_id(source)
            value = converted

        telemetry = CloudTelemetryMessage(
            message_type=match.message_type,
            message_sub_type=match.message_sub_type,
            timestamp=self._clock(),
            envelope_version=constants.ENVELOPE_VERSION,
            payload_version=constants.PAYLOAD_VERSION,
            payload=self._encode_payload(match, value),
            correlation_id=correlation_id or envelope.correlation_id,
        )

        try:
            payload = compact_json(telemetry.as_dict())
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                "cannot serialize D2C message", topic=envelope.topic, path=envelope.path
            ) from exc

        message_id = new_message_id()
        return OutboundMessage(
            topic=create_telemetry_topic(self._connection.device_id, message_id),
            payload=payload,
            message_id=message_id,
        )

    def _encode_payload(self, match: TelemetryMatch, value: JSONValue) -> JSONValue:
        mapping = match.mapping
        if mapping.proto_descriptor:
            if self._codec is None:
                raise CodecError(
                    f"no codec configured for protobuf mapping "
                    f"{match.message_type}/{match.message_sub_type}"
                )
            binary = self._codec.marshal(
                match.message_type, match.message_sub_type, canonical_json(value)
            )
            return base64.b64encode(binary).decode("ascii")
        if mapping.serialization == SERIALIZATION_JSON_STRING:
            return canonical_json(value).decode("utf-8")
        return value


class PassthroughTelemetryHandler:
    """Forwards local messages on the configured topics without mapping."""

    name = "passthrough_telemetry_handler"

    def __init__(self, connection: ConnectionInfo, topics: Sequence[str]) -> None:
        self._connection = connection
        self._topics: Tuple[str, ...] = tuple(topics)

    def topics(self) -> Sequence[str]:
        return self._topics

    def handle(self, message: InboundMessage) -> Optional[OutboundMessage]:
        message_id = new_message_id()
        return OutboundMessage(
            topic=create_telemetry_topic(self._connection.device_id, message_id),
            payload=message.payload,
            message_id=message_id,
        )


def _source_object(envelope: DittoEnvelope) -> Mapping[str, Any]:
    if envelope.value is None:
        return {}
    if not isinstance(envelope.value, dict):
        raise DeserializationError(
            f"cannot deserialize Ditto value '{envelope.value}': expected a JSON object",
            topic=envelope.topic,
            path=envelope.path,
        )
    return envelope.value


def _correlation_id(value: Mapping[str, Any]) -> str:
    correlation_id = value.get(KEY_CORRELATION_ID)
    return correlation_id if isinstance(correlation_id, str) else ""
