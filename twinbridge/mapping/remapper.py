"""Per-field value substitution tables."""

from __future__ import annotations

from typing import Mapping

from ..core.models import JSONValue

FIELD_MAPPING_KEY_DEFAULT = "default"


def remap_field(
    field_mappings: Mapping[str, Mapping[str, JSONValue]],
    reference: str,
    value: JSONValue,
) -> JSONValue:
    """Substitute a resolved reference value through its lookup table.

    Table keys are compared to the raw value by exact equality, so only string
    values can match. Without a match the ``default`` entry is used when the
    table has one; otherwise the raw value is returned unchanged.
    """
    table = field_mappings.get(reference)
    if table is None:
        return value
    for match_value, replacement in table.items():
        if match_value == FIELD_MAPPING_KEY_DEFAULT:
            continue
        if match_value == value:
            return replacement
    return table.get(FIELD_MAPPING_KEY_DEFAULT, value)
