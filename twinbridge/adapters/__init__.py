"""Adapter modules for external integrations."""

from .mqtt import BrokerSettings, MQTTClient, MQTTConnectionError

__all__ = [
    "BrokerSettings",
    "MQTTClient",
    "MQTTConnectionError",
]
