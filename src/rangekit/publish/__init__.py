"""Broker publishing for partition descriptors."""

from .encoding import decode_descriptor, descriptor_payload, encode_descriptor, encode_key
from .sink import PublishSink

__all__ = [
    "PublishSink",
    "encode_descriptor",
    "encode_key",
    "descriptor_payload",
    "decode_descriptor",
]
