"""Main application entry-point for twinbridge."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from .adapters import MQTTClient, MQTTConnectionError
from .codec import ProtobufJsonCodec
from .config import BridgeConfig, load_config
from .core import CatalogError, ConnectionInfo, InboundMessage, MappingError, OutboundMessage
from .handlers import (
    PassthroughCommandHandler,
    PassthroughTelemetryHandler,
    ThingsCommandHandler,
    ThingsTelemetryHandler,
)
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .mapping import MessageMapperCatalog, load_mapper_catalog
from .router import MessageRouter

LOGGER = logging.getLogger(__name__)


def build_router(
    config: BridgeConfig,
    catalog: Optional[MessageMapperCatalog],
    codec: Optional[ProtobufJsonCodec] = None,
) -> MessageRouter:
    """Compose the handler lists for the configured device.

    Passthrough handlers come first so allow-listed topics and command names
    bypass the mapping catalog. Without a catalog only the passthrough
    handlers are built.
    """
    connection = ConnectionInfo(
        device_id=config.cloud.device_id, hub_name=config.cloud.hub_name
    )

    telemetry_handlers = []
    if config.mapper.passthrough_device_topics:
        telemetry_handlers.append(
            PassthroughTelemetryHandler(connection, config.mapper.passthrough_device_topics)
        )

    command_handlers = []
    if config.mapper.passthrough_command_names:
        command_handlers.append(
            PassthroughCommandHandler(config.mapper.passthrough_command_names)
        )

    if catalog is not None:
        if codec is None:
            codec = ProtobufJsonCodec(catalog)
        telemetry_handlers.append(ThingsTelemetryHandler(connection, catalog, codec))
        command_handlers.append(ThingsCommandHandler(connection, catalog, codec))

    return MessageRouter(telemetry_handlers, command_handlers)


class TwinBridgeApp:
    """Bridges the local Ditto broker and the cloud broker.

    Local telemetry is mapped by the router and published to the cloud broker;
    cloud commands received on the device-bound topic are mapped and published
    to the local broker.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        catalog: Optional[MessageMapperCatalog] = None,
        local_client: Optional[MQTTClient] = None,
        cloud_client: Optional[MQTTClient] = None,
    ) -> None:
        self._config = config or load_config()
        self._catalog = catalog
        self._local_client = local_client
        self._cloud_client = cloud_client
        self._router: Optional[MessageRouter] = None
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def router(self) -> Optional[MessageRouter]:
        return self._router

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(signal.SIGTERM, self.request_shutdown)

        LOGGER.info("twinbridge starting with config: %s", self._config.path)
        started = await self._start_services()
        if not started:
            LOGGER.warning("Service startup incomplete; running in degraded mode")

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("twinbridge received shutdown signal")
            raise
        finally:
            await self._stop_services()
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(signal.SIGTERM)

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[BridgeConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("twinbridge received shutdown signal")

    async def _start_services(self) -> bool:
        await self._health.update("local-broker", False, "initialising")
        await self._health.update("cloud-broker", False, "initialising")

        if not self._config.cloud.device_id:
            LOGGER.error("Device ID not found in configuration")
            return False

        if self._catalog is None:
            try:
                self._catalog = load_mapper_catalog(self._config.mapper.config_path)
            except CatalogError as exc:
                LOGGER.error("Cannot load message mapper config: %s", exc)
                await self._health.update("message-mapper", False, str(exc))

        try:
            self._router = build_router(self._config, self._catalog)
        except CatalogError as exc:
            LOGGER.error("Cannot load protobuf descriptors: %s", exc)
            await self._health.update("message-mapper", False, str(exc))
            self._catalog = None
            self._router = build_router(self._config, None)
        if self._catalog is None:
            LOGGER.warning("Message mapping disabled; only passthrough messages are forwarded")
        self._health.set_counters_provider(self._router.stats.as_dict)

        if self._local_client is None:
            self._local_client = MQTTClient(
                self._config.local, client_id=self._config.local.client_id, name="local"
            )
        if self._cloud_client is None:
            self._cloud_client = MQTTClient(
                self._config.cloud, client_id=self._config.cloud.client_id, name="cloud"
            )

        self._local_client.set_message_handler(self._on_local_message)
        self._cloud_client.set_message_handler(self._on_cloud_message)
        for name, client in (
            ("local-broker", self._local_client),
            ("cloud-broker", self._cloud_client),
        ):
            client.register_connect_handler(self._status_handler(name, True))
            client.register_disconnect_handler(self._status_handler(name, False))

        try:
            await self._cloud_client.connect()
            await self._health.update("cloud-broker", True, None)
            await self._local_client.connect()
            await self._health.update("local-broker", True, None)

            self._cloud_client.subscribe(self._config.cloud.resolved_command_topic)
            for topic in self._router.telemetry_topics():
                self._local_client.subscribe(topic)
        except MQTTConnectionError as exc:
            LOGGER.error("MQTT connection failed: %s", exc)
            return False

        await self._start_health_server()
        LOGGER.info(
            "twinbridge active for device %s (%d telemetry topics)",
            self._config.cloud.device_id,
            len(self._router.telemetry_topics()),
        )
        return True

    async def _stop_services(self) -> None:
        for client in (self._local_client, self._cloud_client):
            if client is None:
                continue
            with contextlib.suppress(asyncio.TimeoutError):
                await client.disconnect()
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(self._health, health.host, health.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    def _status_handler(self, name: str, healthy: bool):
        def _handler(rc: int) -> None:
            detail = None if healthy else f"disconnected (rc={rc})"
            asyncio.create_task(self._health.update(name, healthy, detail))

        return _handler

    async def _on_local_message(self, topic: str, payload: bytes) -> None:
        if self._router is None or self._cloud_client is None:
            return
        try:
            outbound = self._router.route_telemetry(InboundMessage(topic, payload))
        except MappingError:
            # counted and logged by the router
            return
        self._publish(self._cloud_client, outbound)

    async def _on_cloud_message(self, topic: str, payload: bytes) -> None:
        if self._router is None or self._local_client is None:
            return
        try:
            outbound = self._router.route_command(InboundMessage(topic, payload))
        except MappingError:
            # counted and logged by the router
            return
        self._publish(self._local_client, outbound)

    def _publish(self, client: MQTTClient, outbound: Optional[OutboundMessage]) -> None:
        if outbound is None:
            return
        try:
            client.publish(outbound.topic, outbound.payload)
        except RuntimeError as exc:
            LOGGER.warning("Cannot publish to %s via %s: %s", outbound.topic, client.name, exc)
