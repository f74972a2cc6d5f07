"""Message mapper configuration: the catalog of telemetry and command rules."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core.errors import CatalogError, NoMappingFound
from ..core.models import JSONValue

LOGGER = logging.getLogger(__name__)

SERIALIZATION_JSON_STRING = "jsonString"


@dataclass(frozen=True, slots=True)
class MappingProperties:
    """Selection and routing properties of a rule.

    Telemetry rules use ``topic`` and ``path`` as "contains" patterns. Command
    rules use ``thing``, ``action`` and ``path`` to address the Ditto message,
    ``value_key`` to wrap the payload and ``retain_correlation_id`` to carry
    the cloud correlation id inside the value.
    """

    topic: str = ""
    path: str = ""
    thing: str = ""
    action: str = ""
    value_key: str = ""
    retain_correlation_id: bool = False


@dataclass(frozen=True, slots=True)
class TelemetryMapping:
    mapping_properties: MappingProperties
    value_template: Optional[Dict[str, JSONValue]] = None
    field_mappings: Mapping[str, Mapping[str, JSONValue]] = field(default_factory=dict)
    proto_descriptor: str = ""
    serialization: str = ""


@dataclass(frozen=True, slots=True)
class CommandMapping:
    mapping_properties: MappingProperties
    proto_descriptor: str = ""


class MessageMapperCatalog:
    """Immutable rule lookup built once from the mapper configuration."""

    def __init__(
        self,
        telemetry: Dict[int, Dict[str, TelemetryMapping]],
        commands: Dict[str, CommandMapping],
        *,
        descriptor_sets: Tuple[Path, ...] = (),
        source: Optional[Path] = None,
    ) -> None:
        self._telemetry = telemetry
        self._commands = commands
        self.descriptor_sets = descriptor_sets
        self.source = source

    def telemetry_mappings(self) -> Dict[int, Dict[str, TelemetryMapping]]:
        return self._telemetry

    def telemetry_mapping(self, message_type: int, message_sub_type: str) -> TelemetryMapping:
        mapping = self._telemetry.get(message_type, {}).get(message_sub_type)
        if mapping is None:
            raise NoMappingFound(
                f"no telemetry mapping for message type {message_type} "
                f"and sub type '{message_sub_type}'"
            )
        return mapping

    def command_mapping(self, command_name: str) -> CommandMapping:
        mapping = self._commands.get(command_name)
        if mapping is None:
            raise NoMappingFound(
                f"command name '{command_name}' not supported",
                command_name=command_name,
            )
        return mapping

    @property
    def command_names(self) -> Tuple[str, ...]:
        return tuple(self._commands)

    @classmethod
    def from_dict(
        cls, document: Mapping[str, Any], *, base_dir: Optional[Path] = None
    ) -> "MessageMapperCatalog":
        if not isinstance(document, Mapping):
            raise CatalogError("message mapper configuration must be a JSON object")

        telemetry: Dict[int, Dict[str, TelemetryMapping]] = {}
        for type_key, sub_types in _section(document, "telemetry").items():
            try:
                message_type = int(type_key)
            except ValueError as exc:
                raise CatalogError(
                    f"telemetry message type '{type_key}' is not an integer"
                ) from exc
            if not isinstance(sub_types, Mapping):
                raise CatalogError(f"telemetry message type {type_key} must map sub types")
            telemetry[message_type] = {
                sub_type: _parse_telemetry_rule(f"{type_key}/{sub_type}", rule)
                for sub_type, rule in sub_types.items()
            }

        commands = {
            name: _parse_command_rule(name, rule)
            for name, rule in _section(document, "commands").items()
        }

        descriptor_sets = document.get("descriptorSets") or []
        if not isinstance(descriptor_sets, list) or not all(
            isinstance(item, str) for item in descriptor_sets
        ):
            raise CatalogError("'descriptorSets' must be a list of file paths")
        resolved = tuple(
            (base_dir / item) if base_dir is not None else Path(item)
            for item in descriptor_sets
        )

        return cls(telemetry, commands, descriptor_sets=resolved)


def load_mapper_catalog(path: Path) -> MessageMapperCatalog:
    """Load the message mapper configuration from a JSON file."""

    try:
        with path.open("r", encoding="utf-8") as stream:
            document = json.load(stream)
    except OSError as exc:
        raise CatalogError(f"cannot read message mapper config '{path}': {exc}") from exc
    except ValueError as exc:
        raise CatalogError(f"cannot parse message mapper config '{path}': {exc}") from exc

    catalog = MessageMapperCatalog.from_dict(document, base_dir=path.parent)
    catalog.source = path
    LOGGER.info(
        "Loaded message mapper config %s (%d telemetry rules, %d command rules)",
        path,
        sum(len(sub_types) for sub_types in catalog.telemetry_mappings().values()),
        len(catalog.command_names),
    )
    return catalog


def _section(document: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = document.get(key) or {}
    if not isinstance(section, Mapping):
        raise CatalogError(f"'{key}' section must be a JSON object")
    return section


def _string(rule: Mapping[str, Any], key: str, name: str) -> str:
    value = rule.get(key) or ""
    if not isinstance(value, str):
        raise CatalogError(f"mapping '{name}': '{key}' must be a string")
    return value


def _parse_properties(rule: Mapping[str, Any], name: str) -> MappingProperties:
    properties = rule.get("mappingProperties") or {}
    if not isinstance(properties, Mapping):
        raise CatalogError(f"mapping '{name}': 'mappingProperties' must be an object")
    retain = properties.get("retainCorrelationId", False)
    if not isinstance(retain, bool):
        raise CatalogError(f"mapping '{name}': 'retainCorrelationId' must be a boolean")
    return MappingProperties(
        topic=_string(properties, "topic", name),
        path=_string(properties, "path", name),
        thing=_string(properties, "thing", name),
        action=_string(properties, "action", name),
        value_key=_string(properties, "value", name),
        retain_correlation_id=retain,
    )


def _parse_telemetry_rule(name: str, rule: Any) -> TelemetryMapping:
    if not isinstance(rule, Mapping):
        raise CatalogError(f"mapping '{name}' must be a JSON object")

    template = rule.get("valueMapping")
    if template is not None and not isinstance(template, dict):
        raise CatalogError(f"mapping '{name}': 'valueMapping' must be an object")

    field_mappings = rule.get("fieldMappings") or {}
    if not isinstance(field_mappings, dict) or not all(
        isinstance(table, dict) for table in field_mappings.values()
    ):
        raise CatalogError(f"mapping '{name}': 'fieldMappings' must map to objects")

    serialization = _string(rule, "serialization", name)
    if serialization and serialization != SERIALIZATION_JSON_STRING:
        raise CatalogError(
            f"mapping '{name}': unsupported serialization '{serialization}'"
        )

    return TelemetryMapping(
        mapping_properties=_parse_properties(rule, name),
        value_template=template,
        field_mappings=field_mappings,
        proto_descriptor=_string(rule, "protoDescriptor", name),
        serialization=serialization,
    )


def _parse_command_rule(name: str, rule: Any) -> CommandMapping:
    if not isinstance(rule, Mapping):
        raise CatalogError(f"mapping '{name}' must be a JSON object")
    return CommandMapping(
        mapping_properties=_parse_properties(rule, name),
        proto_descriptor=_string(rule, "protoDescriptor", name),
    )
