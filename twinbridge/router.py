"""Dispatch of inbound messages to the ordered telemetry and command handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .core.errors import MappingError, NoMappingFound
from .core.models import CommandRequest, InboundMessage, OutboundMessage
from .core.protocols import CommandHandler, TelemetryHandler
from .handlers.base import topic_matches_any

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RouterStats:
    forwarded: int = 0
    dropped: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "forwarded": self.forwarded,
            "dropped": self.dropped,
            "failed": self.failed,
        }


class MessageRouter:
    """Routes local telemetry and cloud commands through the handler lists.

    Telemetry goes to the first handler whose topic filters match the local
    topic. Commands are parsed once and offered to each command handler in
    order; a handler raising :class:`NoMappingFound` passes the command on to
    the next one. Any other error, or a miss in every handler, is raised to
    the caller after being counted and logged.
    """

    def __init__(
        self,
        telemetry_handlers: Sequence[TelemetryHandler] = (),
        command_handlers: Sequence[CommandHandler] = (),
    ) -> None:
        self._telemetry_handlers: List[TelemetryHandler] = list(telemetry_handlers)
        self._command_handlers: List[CommandHandler] = list(command_handlers)
        self.stats = RouterStats()

    @property
    def telemetry_handlers(self) -> Sequence[TelemetryHandler]:
        return tuple(self._telemetry_handlers)

    @property
    def command_handlers(self) -> Sequence[CommandHandler]:
        return tuple(self._command_handlers)

    def telemetry_topics(self) -> List[str]:
        """Distinct topic filters of every telemetry handler, in handler order."""

        topics: List[str] = []
        for handler in self._telemetry_handlers:
            for topic in handler.topics():
                if topic not in topics:
                    topics.append(topic)
        return topics

    def route_telemetry(self, message: InboundMessage) -> Optional[OutboundMessage]:
        handler = self._telemetry_handler_for(message.topic)
        try:
            if handler is None:
                raise NoMappingFound(
                    f"no telemetry handler subscribed to topic '{message.topic}'",
                    topic=message.topic,
                )
            outbound = handler.handle(message)
        except MappingError as exc:
            if exc.topic is None:
                exc.topic = message.topic
            self._record_failure("telemetry", message.topic, exc)
            raise
        return self._record_result(handler.name, message.topic, outbound)

    def route_command(self, message: InboundMessage) -> Optional[OutboundMessage]:
        try:
            request = CommandRequest.parse(message)
            outbound, handler_name = self._dispatch_command(request)
        except MappingError as exc:
            if exc.topic is None:
                exc.topic = message.topic
            self._record_failure("command", message.topic, exc)
            raise
        return self._record_result(handler_name, message.topic, outbound)

    def _dispatch_command(self, request: CommandRequest):
        command_name = request.command.command_name
        last_error: Optional[NoMappingFound] = None
        for handler in self._command_handlers:
            try:
                return handler.handle(request), handler.name
            except NoMappingFound as exc:
                LOGGER.debug("%s skipped command %s: %s", handler.name, command_name, exc)
                last_error = exc
        if last_error is not None:
            raise last_error
        raise NoMappingFound(
            f"cloud command name '{command_name}' is not supported",
            command_name=command_name,
        )

    def _telemetry_handler_for(self, topic: str) -> Optional[TelemetryHandler]:
        for handler in self._telemetry_handlers:
            if topic_matches_any(handler.topics(), topic):
                return handler
        return None

    def _record_result(
        self, handler_name: str, topic: str, outbound: Optional[OutboundMessage]
    ) -> Optional[OutboundMessage]:
        if outbound is None:
            self.stats.dropped += 1
            LOGGER.debug("%s dropped message from %s", handler_name, topic)
            return None
        self.stats.forwarded += 1
        LOGGER.debug("%s mapped %s -> %s", handler_name, topic, outbound.topic)
        return outbound

    def _record_failure(self, direction: str, topic: str, exc: MappingError) -> None:
        self.stats.failed += 1
        LOGGER.warning(
            "Cannot map %s message from %s (%s): %s",
            direction,
            topic,
            type(exc).__name__,
            exc,
        )
