"""Constants used across the twinbridge package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "twinbridge"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME
DEFAULT_MAPPER_CONFIG_FILENAME = "message-mapper-config.json"

DEFAULT_LOG_PATH = Path.home() / ".local" / "state" / APP_NAME / f"{APP_NAME}.log"

DEFAULT_LOCAL_BROKER_HOST = "localhost"
DEFAULT_LOCAL_BROKER_PORT = 1883
DEFAULT_CLOUD_BROKER_HOST = "localhost"
DEFAULT_CLOUD_BROKER_PORT = 8883

# Cloud envelope protocol versions
ENVELOPE_VERSION = "2.0"
PAYLOAD_VERSION = "1.0"

# Local Ditto topics consumed by the mapped telemetry pipeline
MAPPED_TELEMETRY_TOPICS = ("event/#", "e/#", "telemetry/#", "t/#")

TELEMETRY_TOPIC_TEMPLATE = "devices/{device_id}/messages/events/$.mid={message_id}"
DEFAULT_COMMAND_TOPIC_TEMPLATE = "devices/{device_id}/messages/devicebound/#"

DITTO_NAMESPACE = "azure.edge"
DITTO_CONTENT_TYPE = "application/json"
