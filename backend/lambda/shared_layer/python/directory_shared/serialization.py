"""directory_shared.serialization — DynamoDB serialization, timestamps, structured logs."""

from __future__ import annotations

import datetime as dt
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

logger = logging.getLogger(__name__)

_SER = TypeSerializer()
_DESER = TypeDeserializer()


def _serialize(value: Any) -> Dict[str, Any]:
    """Serialize a Python value for DynamoDB."""
    if isinstance(value, float):
        value = Decimal(str(value))
    return _SER.serialize(value)


def _serialize_item(item: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {k: _serialize(v) for k, v in item.items() if v is not None}


def _deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Deserialize a DynamoDB item to a plain Python dict."""
    out: Dict[str, Any] = {}
    for k, v in item.items():
        val = _DESER.deserialize(v)
        if isinstance(val, Decimal):
            val = int(val) if val == int(val) else float(val)
        out[k] = val
    return out


def _now_iso() -> str:
    """Current UTC timestamp, ISO 8601 with milliseconds and a Z suffix."""
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _emit_structured_log(
    *,
    component: str,
    event: str,
    operation: Optional[str] = None,
    entity_id: Optional[str] = None,
    message_id: Optional[str] = None,
    error_code: Optional[str] = None,
) -> None:
    payload: Dict[str, Any] = {
        "timestamp": _now_iso(),
        "component": component,
        "event": event,
        "operation": str(operation or ""),
        "entity_id": str(entity_id or ""),
        "message_id": str(message_id or ""),
        "error_code": str(error_code or ""),
    }
    logger.info("[OBSERVABILITY] %s", json.dumps(payload, sort_keys=True, default=str))
