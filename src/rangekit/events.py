"""Turn S3 upload notifications (raw or SNS-wrapped) into run requests."""
from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

from rangekit.errors import InvalidInput
from rangekit.types import RunRequest

logger = logging.getLogger(__name__)

__all__ = ["parse_notification", "request_from_record", "derive_run_id"]


def derive_run_id(bucket: str, key: str, version_token: Optional[str] = None) -> str:
    """
    Build a run id for an uploaded object.

    With a version token (the event's sequencer or eTag) the id is a stable
    digest, so a notification delivered twice maps to the same run. Without
    one, the id is the current time in milliseconds followed by a digest of
    the bucket and key, so distinct objects never share an id.
    """
    if not version_token:
        millis = int(time.time() * 1000)
        return f"{millis}-{_digest(bucket, key, str(millis))[:12]}"
    return _digest(bucket, key, version_token)[:32]


def _digest(bucket: str, key: str, token: str) -> str:
    return hashlib.sha256(f"{bucket}\0{key}\0{token}".encode("utf-8")).hexdigest()


def request_from_record(record: Dict[str, Any]) -> Optional[RunRequest]:
    """
    Extract a RunRequest from one S3 event record.

    Returns:
        RunRequest, or None when the record is not an ObjectCreated event or
        lacks a bucket name or key
    """
    event_name = record.get("eventName")
    if not event_name:
        logger.warning("Missing eventName in record")
        return None
    if not str(event_name).startswith("ObjectCreated"):
        logger.debug("Ignoring non-ObjectCreated event: %s", event_name)
        return None

    s3 = record.get("s3")
    bucket_node = s3.get("bucket") if isinstance(s3, dict) else None
    object_node = s3.get("object") if isinstance(s3, dict) else None
    if not isinstance(bucket_node, dict) or not isinstance(object_node, dict):
        logger.warning("Missing bucket name or object key in s3 record")
        return None

    bucket = bucket_node.get("name") or ""
    raw_key = object_node.get("key") or ""
    if not isinstance(bucket, str) or not isinstance(raw_key, str) or not bucket or not raw_key:
        logger.warning("Missing bucket name or object key in s3 record")
        return None

    # Keys arrive URL-encoded ("+" for spaces).
    key = unquote_plus(raw_key)
    token = object_node.get("sequencer") or object_node.get("eTag")
    return RunRequest(source_id=bucket, object_key=key, run_id=derive_run_id(bucket, key, token))


def parse_notification(message: Optional[str]) -> List[RunRequest]:
    """
    Parse an upload notification into run requests.

    Accepts an S3 event ({"Records": [...]}) or an SNS envelope whose
    "Message" field carries the S3 event as a JSON string.

    Args:
        message: Raw message body

    Returns:
        One RunRequest per ObjectCreated record (empty for empty messages,
        test events, or messages without records)

    Raises:
        InvalidInput: If the message (or the wrapped SNS message) is not valid JSON
    """
    if message is None or not message.strip():
        logger.warning("Received empty or null message")
        return []

    root = _loads(message)
    records = root.get("Records") if isinstance(root, dict) else None

    if records is None and isinstance(root, dict) and "Message" in root:
        logger.info("Detected SNS wrapper, unwrapping Message field")
        inner = _loads(root["Message"])
        records = inner.get("Records") if isinstance(inner, dict) else None

    if not isinstance(records, list):
        fields = sorted(root) if isinstance(root, dict) else type(root).__name__
        logger.warning("No Records array found in message (fields: %s)", fields)
        return []

    requests = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning("Skipping non-object record: %r", record)
            continue
        request = request_from_record(record)
        if request is not None:
            logger.info("Processing file: %s", request.uri)
            requests.append(request)
    return requests


def _loads(text: Any) -> Any:
    if not isinstance(text, str):
        raise InvalidInput(f"Expected a JSON string, got {type(text).__name__}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidInput(f"Malformed notification JSON: {exc}") from exc
