"""Domain models for the digital twin and cloud envelopes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import DeserializationError

JSONValue = Union[None, bool, int, float, str, List["JSONValue"], Dict[str, "JSONValue"]]

HEADER_CONTENT_TYPE = "content-type"
HEADER_CORRELATION_ID = "correlation-id"


def _load_json_object(payload: bytes, description: str) -> Dict[str, Any]:
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise DeserializationError(f"cannot deserialize {description}") from exc
    if not isinstance(document, dict):
        raise DeserializationError(
            f"cannot deserialize {description}: expected a JSON object, "
            f"got {type(document).__name__}"
        )
    return document


def _optional_str(
    document: Mapping[str, Any], key: str, description: str, **context: Optional[str]
) -> str:
    value = document.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DeserializationError(
            f"cannot deserialize {description}: '{key}' must be a string", **context
        )
    return value


@dataclass(frozen=True, slots=True)
class DittoEnvelope:
    topic: str
    path: str = ""
    headers: Mapping[str, Any] = field(default_factory=dict)
    value: JSONValue = None

    @property
    def correlation_id(self) -> str:
        value = self.headers.get(HEADER_CORRELATION_ID)
        return value if isinstance(value, str) else ""

    @classmethod
    def from_payload(cls, payload: bytes) -> "DittoEnvelope":
        document = _load_json_object(payload, "Ditto message")
        topic = _optional_str(document, "topic", "Ditto message")
        if not topic:
            raise DeserializationError("missing Ditto topic in message")
        path = _optional_str(document, "path", "Ditto message", topic=topic)
        headers = document.get("headers") or {}
        if not isinstance(headers, dict):
            raise DeserializationError(
                "cannot deserialize Ditto message: 'headers' must be an object",
                topic=topic,
                path=path,
            )
        return cls(
            topic=topic,
            path=path,
            headers=headers,
            value=document.get("value"),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "headers": dict(self.headers),
            "path": self.path,
            "value": self.value,
        }


@dataclass(slots=True)
class CloudTelemetryMessage:
    message_type: int
    message_sub_type: str
    timestamp: int
    envelope_version: str
    payload_version: str
    payload: JSONValue
    application_id: str = ""
    correlation_id: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mt": self.message_type,
            "mst": self.message_sub_type,
            "appId": self.application_id,
            "cId": self.correlation_id,
            "ts": self.timestamp,
            "eVer": self.envelope_version,
            "p": self.payload,
            "pVer": self.payload_version,
        }


@dataclass(frozen=True, slots=True)
class CloudCommandMessage:
    command_name: str
    application_id: str = ""
    correlation_id: str = ""
    timestamp: int = 0
    envelope_version: str = ""
    payload: JSONValue = None
    payload_version: str = ""

    @classmethod
    def from_payload(cls, payload: bytes) -> "CloudCommandMessage":
        document = _load_json_object(payload, "cloud message")
        command_name = _optional_str(document, "cmdName", "cloud message")

        def _field(key: str) -> str:
            return _optional_str(document, key, "cloud message", command_name=command_name)

        timestamp = document.get("ts") or 0
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise DeserializationError(
                "cannot deserialize cloud message: 'ts' must be an integer",
                command_name=command_name,
            )
        return cls(
            command_name=command_name,
            application_id=_field("appId"),
            correlation_id=_field("cId"),
            timestamp=timestamp,
            envelope_version=_field("eVer"),
            payload=document.get("p"),
            payload_version=_field("pVer"),
        )


@dataclass(frozen=True, slots=True)
class ConnectionInfo:
    """Identity of the device the bridge is running for."""

    device_id: str
    hub_name: str = ""

    @property
    def thing_device_id(self) -> str:
        return f"{self.hub_name}:{self.device_id}"


@dataclass(frozen=True, slots=True)
class InboundMessage:
    topic: str
    payload: bytes


@dataclass(frozen=True, slots=True)
class CommandRequest:
    """An inbound cloud command, parsed once and shared by every handler."""

    message: InboundMessage
    command: CloudCommandMessage

    @classmethod
    def parse(cls, message: InboundMessage) -> "CommandRequest":
        return cls(message=message, command=CloudCommandMessage.from_payload(message.payload))


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    topic: str
    payload: bytes
    message_id: str
