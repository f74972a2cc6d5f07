"""Binary codec implementations."""

from .protobuf import ProtobufJsonCodec, load_descriptor_pool

__all__ = ["ProtobufJsonCodec", "load_descriptor_pool"]
