import json
from pathlib import Path

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool

from twinbridge.codec import ProtobufJsonCodec
from twinbridge.core import ConnectionInfo
from twinbridge.mapping import MessageMapperCatalog, load_mapper_catalog

FIXTURES = Path(__file__).parent / "fixtures"

TEST_PROTO_PACKAGE = "twinbridge.test"

_FIELD = descriptor_pb2.FieldDescriptorProto


def _json_name(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _add_message(file_proto, name, fields):
    message = file_proto.message_type.add(name=name)
    for number, (field_name, field_type, label, type_name) in enumerate(fields, start=1):
        field = message.field.add(
            name=field_name,
            json_name=_json_name(field_name),
            number=number,
            type=field_type,
            label=label,
        )
        if type_name:
            field.type_name = type_name
    return message


def build_test_file_proto() -> descriptor_pb2.FileDescriptorProto:
    """Messages used by the mapper fixtures, as protoc would describe them."""

    file_proto = descriptor_pb2.FileDescriptorProto(
        name="twinbridge_test.proto", package=TEST_PROTO_PACKAGE, syntax="proto3"
    )
    optional = _FIELD.LABEL_OPTIONAL
    repeated = _FIELD.LABEL_REPEATED
    string = _FIELD.TYPE_STRING

    _add_message(
        file_proto,
        "SimpleMessage",
        [
            ("message_id", string, optional, None),
            ("text", string, optional, None),
            ("version", string, optional, None),
        ],
    )
    _add_message(file_proto, "ContainerRemoved", [("name", string, optional, None)])
    _add_message(
        file_proto,
        "ContainerCreated",
        [
            ("name", string, optional, None),
            ("image_ref", string, optional, None),
            ("created_at", string, optional, None),
        ],
    )
    _add_message(
        file_proto,
        "SingleFieldArray",
        [
            (
                "messages",
                _FIELD.TYPE_MESSAGE,
                repeated,
                f".{TEST_PROTO_PACKAGE}.SimpleMessage",
            )
        ],
    )
    _add_message(
        file_proto, "SingleFieldIntArray", [("values", _FIELD.TYPE_INT32, repeated, None)]
    )
    _add_message(
        file_proto, "SingleFieldBoolArray", [("values", _FIELD.TYPE_BOOL, repeated, None)]
    )
    _add_message(
        file_proto, "SingleFieldStringArray", [("values", string, repeated, None)]
    )
    return file_proto


@pytest.fixture
def proto_pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(build_test_file_proto().SerializeToString())
    return pool


@pytest.fixture
def connection() -> ConnectionInfo:
    return ConnectionInfo(device_id="dummy-device", hub_name="dummy-hub")


@pytest.fixture
def handlers_catalog() -> MessageMapperCatalog:
    return load_mapper_catalog(FIXTURES / "handlers-mapper-config.json")


@pytest.fixture
def convert_catalog() -> MessageMapperCatalog:
    return load_mapper_catalog(FIXTURES / "convert-value-mappings.json")


@pytest.fixture
def handlers_codec(handlers_catalog, proto_pool) -> ProtobufJsonCodec:
    return ProtobufJsonCodec(handlers_catalog, proto_pool)


@pytest.fixture
def convert_codec(convert_catalog, proto_pool) -> ProtobufJsonCodec:
    return ProtobufJsonCodec(convert_catalog, proto_pool)


def ditto_message(topic: str, path: str, value, **headers) -> bytes:
    """Encode a Ditto envelope the way the local broker delivers it."""

    return json.dumps(
        {
            "topic": topic,
            "headers": {"response-required": False, **headers},
            "path": path,
            "value": value,
        }
    ).encode("utf-8")


def cloud_command(command_name: str, payload, **fields) -> bytes:
    document = {
        "appId": "app1",
        "cmdName": command_name,
        "cId": "C2D-msg-correlation-id",
        "eVer": "2.0",
        "pVer": "1.0",
        "p": payload,
    }
    document.update(fields)
    return json.dumps(document).encode("utf-8")
