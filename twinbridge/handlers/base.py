"""Topic helpers shared by the telemetry and command handlers."""

from __future__ import annotations

import uuid
from typing import Iterable

from paho.mqtt.client import topic_matches_sub

from .. import constants
from ..mapping.catalog import MappingProperties


def new_message_id() -> str:
    return str(uuid.uuid4())


def create_telemetry_topic(device_id: str, message_id: str) -> str:
    return constants.TELEMETRY_TOPIC_TEMPLATE.format(
        device_id=device_id, message_id=message_id
    )


def create_ditto_topic(properties: MappingProperties, thing_device_id: str) -> str:
    """Ditto live message topic addressed by a command rule."""

    thing_id = thing_device_id
    if properties.thing:
        thing_id = f"{thing_device_id}:{properties.thing}"
    return f"{constants.DITTO_NAMESPACE}/{thing_id}/things/live/messages/{properties.action}"


def create_command_topic(
    properties: MappingProperties, thing_device_id: str, request_id: str
) -> str:
    """Local routing topic for a mapped command.

    Rules without a thing address the device itself and only carry the
    request id; rules with a thing use the full ``namespace:hub:device:thing`` id.
    """
    if not properties.thing:
        return f"command///req/{request_id}/{properties.action}"
    return (
        f"command//{constants.DITTO_NAMESPACE}:{thing_device_id}:{properties.thing}"
        f"/req/{request_id}/{properties.action}"
    )


def topic_matches_any(filters: Iterable[str], topic: str) -> bool:
    return any(topic_matches_sub(topic_filter, topic) for topic_filter in filters)
