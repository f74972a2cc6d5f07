"""Selection of the telemetry mapping rule for a Ditto envelope."""

from __future__ import annotations

from typing import NamedTuple

from ..core.errors import NoMappingFound
from ..core.protocols import MappingCatalog
from .catalog import MappingProperties, TelemetryMapping


class TelemetryMatch(NamedTuple):
    message_type: int
    message_sub_type: str
    mapping: TelemetryMapping


def rule_matches(properties: MappingProperties, topic: str, path: str) -> bool:
    """Return whether a rule's topic/path patterns select the given envelope.

    Patterns are plain substrings. A rule without any pattern never matches.
    """
    if properties.topic:
        if properties.path:
            return properties.topic in topic and properties.path in path
        return properties.topic in topic
    if properties.path:
        return properties.path in path
    return False


def match_telemetry_rule(catalog: MappingCatalog, topic: str, path: str) -> TelemetryMatch:
    """Return the first rule, in catalog order, whose patterns match.

    Raises:
        NoMappingFound: If the topic is empty or no rule matches.
    """
    if not topic:
        raise NoMappingFound("missing Ditto topic in message", path=path)

    for message_type, sub_types in catalog.telemetry_mappings().items():
        for message_sub_type, mapping in sub_types.items():
            if rule_matches(mapping.mapping_properties, topic, path):
                return TelemetryMatch(message_type, message_sub_type, mapping)

    raise NoMappingFound(
        f"cannot map Ditto topic '{topic}' & Ditto path '{path}' to D2C message sub type",
        topic=topic,
        path=path,
    )
