"""Evaluation of value templates against Ditto values.

A template is a JSON object whose leaves are either literals or directives:

``$a.b.c``
    Reference into the source value. A missing (or null) target removes the
    key from the output. A resolved value is passed through the rule's field
    mappings, keyed by the full reference string.
``timestamp()``
    Current Unix time in milliseconds.
``++name``
    Next value of the named incrementor, starting at 1.

When a field mapping resolves to the ignore value ``"_"`` the whole message is
dropped and :meth:`TemplateInterpreter.interpret` returns ``None``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Mapping, Optional

from ..core.models import JSONValue
from ..core.utils import clone_json, unix_timestamp_ms
from .catalog import TelemetryMapping
from .remapper import remap_field

LOGGER = logging.getLogger(__name__)

IGNORE_VALUE = "_"
REFERENCE_PREFIX = "$"
INCREMENT_PREFIX = "++"
FUNC_TIMESTAMP = "timestamp()"


class IncrementorStore:
    """Named monotonically increasing counters shared by all interpretations."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str) -> int:
        with self._lock:
            value = self._counters.get(name, 0) + 1
            self._counters[name] = value
            return value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)


class _Drop(Exception):
    """Internal signal that a field mapping requested the message be ignored."""


def resolve_reference(path: str, source: Mapping[str, JSONValue]) -> JSONValue:
    """Descend a dotted path through nested objects; ``None`` when absent."""

    current: JSONValue = source
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


class TemplateInterpreter:
    def __init__(
        self,
        incrementors: Optional[IncrementorStore] = None,
        *,
        clock: Callable[[], int] = unix_timestamp_ms,
    ) -> None:
        self._incrementors = incrementors if incrementors is not None else IncrementorStore()
        self._clock = clock

    @property
    def incrementors(self) -> IncrementorStore:
        return self._incrementors

    def interpret(
        self, mapping: TelemetryMapping, source: Mapping[str, JSONValue]
    ) -> Optional[Dict[str, JSONValue]]:
        """Evaluate ``mapping.value_template`` against ``source``.

        Returns the rewritten object, or ``None`` when the message is dropped.
        The stored template is never modified.
        """
        template = mapping.value_template or {}
        output = clone_json(template)
        assert isinstance(output, dict)
        try:
            self._evaluate(mapping, output, source)
        except _Drop:
            LOGGER.debug("Field mapping requested drop of message")
            return None
        return output

    def _evaluate(
        self,
        mapping: TelemetryMapping,
        node: Dict[str, JSONValue],
        source: Mapping[str, JSONValue],
    ) -> None:
        for key, value in list(node.items()):
            if isinstance(value, dict):
                self._evaluate(mapping, value, source)
            elif isinstance(value, str):
                if value.startswith(REFERENCE_PREFIX):
                    resolved = resolve_reference(value[len(REFERENCE_PREFIX):], source)
                    if resolved is None:
                        del node[key]
                        continue
                    remapped = remap_field(mapping.field_mappings, value, resolved)
                    if remapped == IGNORE_VALUE:
                        raise _Drop()
                    node[key] = clone_json(remapped)
                elif value == FUNC_TIMESTAMP:
                    node[key] = self._clock()
                elif value.startswith(INCREMENT_PREFIX):
                    node[key] = self._incrementors.increment(value[len(INCREMENT_PREFIX):])
