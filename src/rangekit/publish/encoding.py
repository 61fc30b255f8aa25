"""Wire encoding of partition descriptors for the broker."""
from __future__ import annotations

import json
from typing import Any, Dict, Tuple

from rangekit.types import PartitionDescriptor

__all__ = ["encode_key", "encode_descriptor", "descriptor_payload", "decode_descriptor"]


def descriptor_payload(descriptor: PartitionDescriptor) -> Dict[str, Any]:
    """
    Build the message body consumed by downstream workers.

    Field names and order are part of the wire contract and must not change.
    """
    return {
        "bucketName": descriptor.source_id,
        "key": descriptor.object_key,
        "startByte": descriptor.start_byte,
        "endByte": descriptor.end_byte,
        "partitionNumber": descriptor.sequence_number,
        "jobExecutionId": descriptor.run_id,
    }


def encode_key(descriptor: PartitionDescriptor) -> bytes:
    return descriptor.message_key.encode("utf-8")


def encode_descriptor(descriptor: PartitionDescriptor) -> Tuple[bytes, bytes]:
    """
    Encode a descriptor into a (key, value) pair of bytes.

    Examples:
        >>> d = PartitionDescriptor("files", "transactions.txt", 0, 52428799, 0, "1762026767663")
        >>> encode_descriptor(d)[1]
        b'{"bucketName":"files","key":"transactions.txt","startByte":0,"endByte":52428799,"partitionNumber":0,"jobExecutionId":"1762026767663"}'
    """
    value = json.dumps(
        descriptor_payload(descriptor),
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return encode_key(descriptor), value


def decode_descriptor(value: bytes) -> PartitionDescriptor:
    """Parse a message body back into a descriptor (used by consumers and tests)."""
    data = json.loads(value.decode("utf-8"))
    return PartitionDescriptor(
        source_id=data["bucketName"],
        object_key=data["key"],
        start_byte=int(data["startByte"]),
        end_byte=int(data["endByte"]),
        sequence_number=int(data["partitionNumber"]),
        run_id=str(data["jobExecutionId"]),
    )
