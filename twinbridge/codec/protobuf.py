"""Protobuf codec converting between mapped JSON values and binary payloads.

Rules name their message type through ``protoDescriptor`` (a fully qualified
protobuf message name). Descriptors come from descriptor set files produced
with ``protoc --include_imports --descriptor_set_out=...``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Type

from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import DecodeError, Message

from ..core.errors import CatalogError, CodecError, MappingError
from ..core.utils import canonical_json
from ..mapping.catalog import MessageMapperCatalog

LOGGER = logging.getLogger(__name__)


def load_descriptor_pool(paths: Iterable[Path]) -> descriptor_pool.DescriptorPool:
    """Build a descriptor pool from compiled descriptor set files."""

    pool = descriptor_pool.DescriptorPool()
    for path in paths:
        try:
            descriptor_set = descriptor_pb2.FileDescriptorSet.FromString(path.read_bytes())
        except OSError as exc:
            raise CatalogError(f"cannot read descriptor set '{path}': {exc}") from exc
        except DecodeError as exc:
            raise CatalogError(f"invalid descriptor set '{path}'") from exc
        for file_proto in descriptor_set.file:
            try:
                pool.AddSerializedFile(file_proto.SerializeToString())
            except (TypeError, ValueError) as exc:
                raise CatalogError(
                    f"cannot register '{file_proto.name}' from '{path}': {exc}"
                ) from exc
        LOGGER.debug("Loaded %d proto files from %s", len(descriptor_set.file), path)
    return pool


class ProtobufJsonCodec:
    """Codec backed by a protobuf descriptor pool and the mapper catalog."""

    def __init__(
        self,
        catalog: MessageMapperCatalog,
        pool: Optional[descriptor_pool.DescriptorPool] = None,
    ) -> None:
        self._catalog = catalog
        self._pool = pool if pool is not None else load_descriptor_pool(catalog.descriptor_sets)
        self._classes: Dict[str, Type[Message]] = {}

    def marshal(self, message_type: int, message_sub_type: str, data: bytes) -> bytes:
        try:
            mapping = self._catalog.telemetry_mapping(message_type, message_sub_type)
        except MappingError as exc:
            raise CodecError(str(exc)) from exc

        message_class = self._message_class(mapping.proto_descriptor)
        try:
            document = json.loads(data)
        except ValueError as exc:
            raise CodecError("cannot decode telemetry value for protobuf marshalling") from exc

        message = message_class()
        try:
            json_format.ParseDict(_fit_document(message.DESCRIPTOR, document), message)
        except json_format.ParseError as exc:
            raise CodecError(
                f"cannot marshal value of {message_type}/{message_sub_type} "
                f"to '{mapping.proto_descriptor}': {exc}"
            ) from exc
        return message.SerializeToString()

    def unmarshal(self, command_name: str, encoded: str) -> bytes:
        try:
            mapping = self._catalog.command_mapping(command_name)
        except MappingError as exc:
            raise CodecError(str(exc), command_name=command_name) from exc

        message_class = self._message_class(mapping.proto_descriptor)
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CodecError(
                f"payload of command '{command_name}' is not valid base64",
                command_name=command_name,
            ) from exc

        message = message_class()
        try:
            message.ParseFromString(data)
        except DecodeError as exc:
            raise CodecError(
                f"cannot unmarshal payload of command '{command_name}' "
                f"as '{mapping.proto_descriptor}'",
                command_name=command_name,
            ) from exc
        return canonical_json(
            json_format.MessageToDict(message, preserving_proto_field_name=True)
        )

    def _message_class(self, full_name: str) -> Type[Message]:
        cached = self._classes.get(full_name)
        if cached is not None:
            return cached
        if not full_name:
            raise CodecError("mapping has no protobuf descriptor")
        try:
            descriptor = self._pool.FindMessageTypeByName(full_name)
        except KeyError as exc:
            raise CodecError(f"unknown protobuf message type '{full_name}'") from exc
        message_class = message_factory.GetMessageClass(descriptor)
        self._classes[full_name] = message_class
        return message_class


def _fit_document(descriptor: Descriptor, document: Any) -> Dict[str, Any]:
    """Wrap a non-object value into the single field of ``descriptor``."""

    if isinstance(document, dict):
        return document
    if len(descriptor.fields) != 1:
        raise CodecError(
            f"cannot marshal {type(document).__name__} value into "
            f"'{descriptor.full_name}': message must have exactly one field"
        )
    field = descriptor.fields[0]
    if field.label == FieldDescriptor.LABEL_REPEATED and not isinstance(document, list):
        document = [document]
    return {field.name: document}
