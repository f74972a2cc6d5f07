"""Telemetry and command handlers composed by the message router."""

from .base import create_command_topic, create_ditto_topic, create_telemetry_topic
from .command import PassthroughCommandHandler, ThingsCommandHandler, wrap_payload
from .telemetry import PassthroughTelemetryHandler, ThingsTelemetryHandler

__all__ = [
    "PassthroughCommandHandler",
    "PassthroughTelemetryHandler",
    "ThingsCommandHandler",
    "ThingsTelemetryHandler",
    "create_command_topic",
    "create_ditto_topic",
    "create_telemetry_topic",
    "wrap_payload",
]
