"""Protocol definitions for the engine's collaborators and handlers."""

from __future__ import annotations

from typing import Dict, Optional, Protocol, Sequence, TYPE_CHECKING

from .models import CommandRequest, InboundMessage, OutboundMessage

if TYPE_CHECKING:
    from ..mapping.catalog import CommandMapping, TelemetryMapping


class MappingCatalog(Protocol):
    """Read-only lookup of mapping rules."""

    def telemetry_mappings(self) -> Dict[int, Dict[str, "TelemetryMapping"]]:
        """Return telemetry rules keyed by message type, then sub type, in load order."""
        ...

    def command_mapping(self, command_name: str) -> "CommandMapping":
        """Return the rule for a command name.

        Raises:
            NoMappingFound: If the command name has no rule.
        """
        ...


class Codec(Protocol):
    """Opaque binary codec keyed by message identifiers."""

    def marshal(self, message_type: int, message_sub_type: str, data: bytes) -> bytes:
        """Convert a JSON document into its binary form."""
        ...

    def unmarshal(self, command_name: str, encoded: str) -> bytes:
        """Convert an encoded command payload into a JSON document."""
        ...


class TelemetryHandler(Protocol):
    name: str

    def topics(self) -> Sequence[str]:
        """MQTT topic filters on the local broker this handler consumes."""
        ...

    def handle(self, message: InboundMessage) -> Optional[OutboundMessage]:
        """Map a local message; ``None`` means the message is dropped."""
        ...


class CommandHandler(Protocol):
    name: str

    def handle(self, request: CommandRequest) -> Optional[OutboundMessage]:
        """Map a cloud command; raises NoMappingFound when not responsible."""
        ...
