import json
from pathlib import Path

import pytest

from twinbridge.adapters import MQTTConnectionError
from twinbridge.app import TwinBridgeApp, build_router
from twinbridge.config import load_config
from twinbridge.handlers import (
    PassthroughCommandHandler,
    PassthroughTelemetryHandler,
    ThingsCommandHandler,
    ThingsTelemetryHandler,
)

from conftest import FIXTURES, cloud_command, ditto_message


class FakeBrokerClient:
    def __init__(self, name: str, *, fail_connect: bool = False, fail_publish: bool = False):
        self.name = name
        self.fail_connect = fail_connect
        self.fail_publish = fail_publish
        self.connected = False
        self.subscriptions = []
        self.published = []
        self.message_handler = None
        self.connect_handlers = []
        self.disconnect_handlers = []

    async def connect(self, timeout: float = 30.0) -> None:
        if self.fail_connect:
            raise MQTTConnectionError("Timed out connecting to MQTT broker")
        self.connected = True

    async def disconnect(self, timeout: float = 5.0) -> None:
        self.connected = False

    def publish(self, topic, payload, qos=1, retain=False):
        if self.fail_publish:
            raise RuntimeError("MQTT client not connected")
        self.published.append((topic, payload))

    def subscribe(self, topic, qos=1):
        self.subscriptions.append(topic)

    def set_message_handler(self, handler):
        self.message_handler = handler

    def register_connect_handler(self, handler):
        self.connect_handlers.append(handler)

    def register_disconnect_handler(self, handler):
        self.disconnect_handlers.append(handler)


@pytest.fixture
def bridge_config(tmp_path: Path):
    path = tmp_path / "twinbridge.cfg"
    path.write_text(
        "[cloud]\ndevice_id = dummy-device\nhub_name = dummy-hub\n"
        f"[mapper]\nconfig_path = {FIXTURES / 'convert-value-mappings.json'}\n"
        "passthrough_device_topics = datapoints/#\n"
        "passthrough_command_names = testCommand\n",
        encoding="utf-8",
    )
    return load_config(path)


@pytest.fixture
def clients():
    return FakeBrokerClient("local"), FakeBrokerClient("cloud")


def _app(config, clients, **kwargs) -> TwinBridgeApp:
    local, cloud = clients
    return TwinBridgeApp(config, local_client=local, cloud_client=cloud, **kwargs)


def test_build_router_orders_passthrough_first(bridge_config, convert_catalog, convert_codec):
    router = build_router(bridge_config, convert_catalog, convert_codec)

    assert [type(handler) for handler in router.telemetry_handlers] == [
        PassthroughTelemetryHandler,
        ThingsTelemetryHandler,
    ]
    assert [type(handler) for handler in router.command_handlers] == [
        PassthroughCommandHandler,
        ThingsCommandHandler,
    ]
    assert router.telemetry_topics() == ["datapoints/#", "event/#", "e/#", "telemetry/#", "t/#"]


def test_build_router_without_passthrough(tmp_path, convert_catalog, convert_codec):
    config = load_config(tmp_path / "twinbridge.cfg")

    router = build_router(config, convert_catalog, convert_codec)

    assert len(router.telemetry_handlers) == 1
    assert len(router.command_handlers) == 1


@pytest.mark.asyncio
async def test_start_subscribes_both_brokers(bridge_config, clients):
    local, cloud = clients
    app = _app(bridge_config, clients)

    assert await app._start_services() is True

    assert local.connected and cloud.connected
    assert cloud.subscriptions == ["devices/dummy-device/messages/devicebound/#"]
    assert local.subscriptions == ["datapoints/#", "event/#", "e/#", "telemetry/#", "t/#"]
    assert len(local.connect_handlers) == 1
    assert len(cloud.disconnect_handlers) == 1

    snapshot = await app.health.snapshot()
    assert snapshot["status"] == "ok"
    assert snapshot["messages"] == {"forwarded": 0, "dropped": 0, "failed": 0}

    await app._stop_services()
    assert not local.connected and not cloud.connected


@pytest.mark.asyncio
async def test_local_telemetry_published_to_cloud(bridge_config, clients):
    local, cloud = clients
    app = _app(bridge_config, clients)
    await app._start_services()

    await local.message_handler(
        "event/test",
        ditto_message(
            "tenant1/dummy-device/things/live/messages/simple.ref.mapping",
            "/features/Test/outbox/messages/simple.ref.mapping",
            {"bool_key": True},
        ),
    )
    await local.message_handler("datapoints/speed", b'{"v": 1}')

    assert len(cloud.published) == 2
    topic, payload = cloud.published[0]
    assert topic.startswith("devices/dummy-device/messages/events/$.mid=")
    assert json.loads(payload)["p"] == {"bool.key": True}
    assert cloud.published[1][1] == b'{"v": 1}'
    assert app.router.stats.forwarded == 2


@pytest.mark.asyncio
async def test_cloud_commands_published_locally(bridge_config, clients):
    local, cloud = clients
    app = _app(bridge_config, clients)
    await app._start_services()

    message = cloud_command("testCommand", {"x": 1})
    await cloud.message_handler("devices/dummy-device/messages/devicebound/x", message)

    assert local.published == [("app1/testCommand", message)]


@pytest.mark.asyncio
async def test_unmappable_messages_are_counted_not_published(bridge_config, clients):
    local, cloud = clients
    app = _app(bridge_config, clients)
    await app._start_services()

    await local.message_handler("event/test", b"not json")
    await local.message_handler(
        "event/test",
        ditto_message(
            "tenant1/dummy-device/things/live/messages/ignore.mapping",
            "/features/Test/outbox/messages/ignore.mapping",
            {"string_key": "field_value"},
        ),
    )
    await cloud.message_handler(
        "devices/dummy-device/messages/devicebound/x", cloud_command("unknown", {})
    )

    assert local.published == []
    assert cloud.published == []
    assert app.router.stats.as_dict() == {"forwarded": 0, "dropped": 1, "failed": 2}


@pytest.mark.asyncio
async def test_publish_failure_is_logged(bridge_config, caplog):
    local, cloud = FakeBrokerClient("local"), FakeBrokerClient("cloud", fail_publish=True)
    app = _app(bridge_config, (local, cloud))
    await app._start_services()

    await local.message_handler("datapoints/speed", b"{}")

    assert "Cannot publish" in caplog.text


@pytest.mark.asyncio
async def test_start_requires_device_id(tmp_path, clients):
    config = load_config(tmp_path / "twinbridge.cfg")
    app = _app(config, clients)

    assert await app._start_services() is False
    assert app.router is None


@pytest.mark.asyncio
async def test_missing_mapper_config_keeps_passthrough(bridge_config, clients, tmp_path):
    local, cloud = clients
    bridge_config.mapper.config_path = tmp_path / "missing.json"
    app = _app(bridge_config, clients)

    assert await app._start_services() is True

    assert [type(handler) for handler in app.router.telemetry_handlers] == [
        PassthroughTelemetryHandler
    ]
    assert [type(handler) for handler in app.router.command_handlers] == [
        PassthroughCommandHandler
    ]
    assert local.subscriptions == ["datapoints/#"]
    assert cloud.subscriptions == ["devices/dummy-device/messages/devicebound/#"]

    command = cloud_command("testCommand", {"x": 1})
    await cloud.message_handler("devices/dummy-device/messages/devicebound/x", command)
    await local.message_handler("datapoints/speed", b'{"v": 1}')
    await cloud.message_handler(
        "devices/dummy-device/messages/devicebound/x",
        cloud_command("container.manifest", "dummy_payload"),
    )

    assert local.published == [("app1/testCommand", command)]
    assert [payload for _, payload in cloud.published] == [b'{"v": 1}']
    assert app.router.stats.as_dict() == {"forwarded": 2, "dropped": 0, "failed": 1}

    snapshot = await app.health.snapshot()
    components = {item["name"]: item for item in snapshot["components"]}
    assert snapshot["status"] == "degraded"
    assert components["message-mapper"]["healthy"] is False


def test_build_router_without_catalog(bridge_config):
    router = build_router(bridge_config, None)

    assert router.telemetry_topics() == ["datapoints/#"]
    assert [handler.name for handler in router.command_handlers] == [
        "command_passthrough_handler"
    ]


@pytest.mark.asyncio
async def test_start_with_unreachable_broker(bridge_config):
    local, cloud = FakeBrokerClient("local"), FakeBrokerClient("cloud", fail_connect=True)
    app = _app(bridge_config, (local, cloud))

    assert await app._start_services() is False

    snapshot = await app.health.snapshot()
    assert snapshot["status"] == "degraded"
    assert local.connected is False


@pytest.mark.asyncio
async def test_run_until_shutdown(bridge_config, clients, convert_catalog):
    local, cloud = clients
    app = _app(bridge_config, clients, catalog=convert_catalog)

    async def _connect(timeout: float = 30.0) -> None:
        local.connected = True
        app.request_shutdown()

    local.connect = _connect
    await app.run()

    assert app.router is not None
    assert not local.connected and not cloud.connected
