"""Error taxonomy for the mapping engine.

Every failure a pipeline can report derives from :class:`MappingError`. A
dropped message is not an error: handlers signal it by returning ``None``.
"""

from __future__ import annotations

from typing import Optional


class MappingError(RuntimeError):
    """Base class for failures while mapping a single message."""

    def __init__(
        self,
        message: str,
        *,
        topic: Optional[str] = None,
        path: Optional[str] = None,
        command_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.topic = topic
        self.path = path
        self.command_name = command_name


class DeserializationError(MappingError):
    """Raised when an envelope or payload is not valid JSON of the expected shape."""


class NoMappingFound(MappingError):
    """Raised when no rule or allow-list entry covers the message."""


class CodecError(MappingError):
    """Raised when the binary codec cannot marshal or unmarshal a payload."""


class SerializationError(MappingError):
    """Raised when the outbound message cannot be serialized."""


class CatalogError(RuntimeError):
    """Raised when the message mapper configuration cannot be loaded."""
