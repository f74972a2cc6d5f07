"""Core primitives for twinbridge."""

from .errors import (
    CatalogError,
    CodecError,
    DeserializationError,
    MappingError,
    NoMappingFound,
    SerializationError,
)
from .models import (
    CloudCommandMessage,
    CloudTelemetryMessage,
    CommandRequest,
    ConnectionInfo,
    DittoEnvelope,
    InboundMessage,
    JSONValue,
    OutboundMessage,
)
from .protocols import Codec, CommandHandler, MappingCatalog, TelemetryHandler
from .utils import canonical_json, clone_json, unix_timestamp_ms

__all__ = [
    "CatalogError",
    "CloudCommandMessage",
    "CloudTelemetryMessage",
    "Codec",
    "CodecError",
    "CommandHandler",
    "CommandRequest",
    "ConnectionInfo",
    "DeserializationError",
    "DittoEnvelope",
    "InboundMessage",
    "JSONValue",
    "MappingCatalog",
    "MappingError",
    "NoMappingFound",
    "OutboundMessage",
    "SerializationError",
    "TelemetryHandler",
    "canonical_json",
    "clone_json",
    "unix_timestamp_ms",
]
