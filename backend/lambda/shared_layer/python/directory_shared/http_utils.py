"""directory_shared.http_utils — HTTP response helpers with CORS.

Response envelope shared by the directory API Lambda: every body carries a
``message`` plus an entity field, and errors add an ``error`` code.
"""

from __future__ import annotations

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Dict, Tuple

from directory_shared.errors import DirectoryError, ValidationError


def _cors_headers(origin: str = "*") -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _response(status_code: int, body: Any, origin: str = "*") -> Dict[str, Any]:
    """Build an API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {**_cors_headers(origin), "Content-Type": "application/json"},
        "body": json.dumps(body, default=_json_default),
    }


def _error(status_code: int, message: str, code: str = "INTERNAL_ERROR", origin: str = "*", **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"message": message, "error": code}
    if extra:
        payload.update(extra)
    return _response(status_code, payload, origin)


def _error_from_exception(exc: DirectoryError, origin: str = "*") -> Dict[str, Any]:
    return _error(exc.status_code, exc.message, exc.code, origin)


def _json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON object body of an API Gateway event (handles base64)."""
    raw = event.get("body")
    if raw in (None, ""):
        return {}
    try:
        if event.get("isBase64Encoded"):
            raw = base64.b64decode(raw, validate=True).decode("utf-8")
        parsed = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError) as exc:
        raise ValidationError(f"Invalid JSON body: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("JSON body must be an object.")
    return parsed


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from an API Gateway v2 (or v1) event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = event.get("rawPath") or http.get("path") or event.get("path") or "/"
    return method, path
