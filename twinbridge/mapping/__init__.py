"""Message mapping engine: rule catalog, matcher, interpreter and field remapper."""

from .catalog import (
    CommandMapping,
    MappingProperties,
    MessageMapperCatalog,
    TelemetryMapping,
    load_mapper_catalog,
)
from .interpreter import IGNORE_VALUE, IncrementorStore, TemplateInterpreter
from .matcher import TelemetryMatch, match_telemetry_rule, rule_matches
from .remapper import remap_field

__all__ = [
    "CommandMapping",
    "IGNORE_VALUE",
    "IncrementorStore",
    "MappingProperties",
    "MessageMapperCatalog",
    "TelemetryMapping",
    "TelemetryMatch",
    "TemplateInterpreter",
    "load_mapper_catalog",
    "match_telemetry_rule",
    "remap_field",
    "rule_matches",
]
