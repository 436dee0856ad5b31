"""directory_api/lambda_function.py — Organization and user directory HTTP API

Reads are answered from DynamoDB. Creates and updates are validated against
the current table contents and then enqueued on SQS; the intent_consumer
Lambda applies them later, so mutations answer 202 Accepted.

Routes (via API Gateway HTTP API):
  POST   /organizations                           — enqueue createOrganization
  PUT    /organizations                           — enqueue updateOrganization
  GET    /organizations                           — list organizations
  GET    /organizations/{orgId}                   — get organization
  POST   /organizations/{orgId}/users             — enqueue createUser
  PUT    /organizations/{orgId}/users             — enqueue updateUser
  GET    /organizations/{orgId}/users             — list users of an organization
  GET    /organizations/{orgId}/users/{userId}    — get user
  OPTIONS *                                       — CORS preflight

Environment variables:
  ORGANIZATIONS_TABLE           default: Organizations
  USERS_TABLE                   default: Users
  USERS_ORG_INDEX               default: OrgId-index
  ORGANIZATION_USER_QUEUE_URL   intent queue URL
  DYNAMODB_REGION               default: eu-north-1
  IS_OFFLINE                    use DynamoDB Local / local SQS endpoints
  CORS_ORIGIN                   default: *
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import unquote

from directory_shared.aws_clients import build_ddb_client, build_sqs_client
from directory_shared.config import DirectoryConfig
from directory_shared.errors import DirectoryError
from directory_shared.http_utils import (
    _cors_headers,
    _error,
    _error_from_exception,
    _json_body,
    _path_method,
    _response,
)
from directory_shared.producer import Accepted, MutationProducer
from directory_shared.query import QueryService
from directory_shared.queue import IntentQueue
from directory_shared.store import RecordStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Lazy per-container services
# ---------------------------------------------------------------------------

_config: Optional[DirectoryConfig] = None
_store: Optional[RecordStore] = None
_queue: Optional[IntentQueue] = None


def _get_config() -> DirectoryConfig:
    global _config
    if _config is None:
        _config = DirectoryConfig.from_env()
    return _config


def _get_store() -> RecordStore:
    global _store
    if _store is None:
        config = _get_config()
        _store = RecordStore(build_ddb_client(config), config)
    return _store


def _get_queue() -> IntentQueue:
    global _queue
    if _queue is None:
        config = _get_config()
        _queue = IntentQueue(build_sqs_client(config), config)
    return _queue


def _get_producer() -> MutationProducer:
    return MutationProducer(_get_store(), _get_queue())


def _get_query() -> QueryService:
    return QueryService(_get_store())


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

_RE_ORGANIZATIONS = re.compile(r"^/organizations/?$")
_RE_ORGANIZATION = re.compile(r"^/organizations/(?P<orgId>[^/]+)/?$")
_RE_USERS = re.compile(r"^/organizations/(?P<orgId>[^/]+)/users/?$")
_RE_USER = re.compile(r"^/organizations/(?P<orgId>[^/]+)/users/(?P<userId>[^/]+)/?$")


def _ok(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return _response(status_code, body, _get_config().cors_origin)


def _accepted(result: Accepted, message: str) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "message": message,
        "operation": result.operation,
        "orgId": result.org_id,
    }
    if result.user_id:
        body["userId"] = result.user_id
    return _ok(202, body)


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

def _handle_create_organization(event: Dict[str, Any]) -> Dict[str, Any]:
    body = _json_body(event)
    result = _get_producer().submit_create_organization(body.get("name"), body.get("description"))
    return _accepted(result, "Organization creation accepted.")


def _handle_update_organization(event: Dict[str, Any]) -> Dict[str, Any]:
    body = _json_body(event)
    result = _get_producer().submit_update_organization(
        body.get("orgId"),
        name=body.get("name"),
        description=body.get("description"),
    )
    return _accepted(result, "Organization update accepted.")


def _handle_list_organizations() -> Dict[str, Any]:
    organizations = _get_query().get_all_organizations()
    if not organizations:
        return _ok(200, {"message": "No organizations found.", "organizations": []})
    return _ok(200, {"message": f"Found {len(organizations)} organizations.", "organizations": organizations})


def _handle_get_organization(org_id: str) -> Dict[str, Any]:
    organization = _get_query().get_organization(org_id)
    return _ok(200, {"message": "Organization found.", "organization": organization})


def _handle_create_or_update_user(event: Dict[str, Any], org_id: str, is_update: bool) -> Dict[str, Any]:
    body = _json_body(event)
    result = _get_producer().submit_create_or_update_user(
        org_id,
        body.get("userId"),
        body.get("name"),
        body.get("email"),
        is_update=is_update,
    )
    message = "User update accepted." if is_update else "User registration accepted."
    return _accepted(result, message)


def _handle_list_users(org_id: str) -> Dict[str, Any]:
    users = _get_query().get_all_users_by_organization(org_id)
    if not users:
        return _ok(200, {"message": f"No users found in organization '{org_id}'.", "users": []})
    return _ok(200, {"message": f"Found {len(users)} users.", "users": users})


def _handle_get_user(org_id: str, user_id: str) -> Dict[str, Any]:
    user = _get_query().get_user(org_id, user_id)
    return _ok(200, {"message": "User found.", "user": user})


def _route(method: str, path: str, event: Dict[str, Any]) -> Dict[str, Any]:
    origin = _get_config().cors_origin

    if _RE_ORGANIZATIONS.match(path):
        if method == "POST":
            return _handle_create_organization(event)
        if method == "PUT":
            return _handle_update_organization(event)
        if method == "GET":
            return _handle_list_organizations()
        return _error(405, f"Method {method} not allowed on /organizations.", "METHOD_NOT_ALLOWED", origin)

    m_user = _RE_USER.match(path)
    if m_user:
        if method == "GET":
            return _handle_get_user(unquote(m_user.group("orgId")), unquote(m_user.group("userId")))
        return _error(405, f"Method {method} not allowed. Use GET.", "METHOD_NOT_ALLOWED", origin)

    m_users = _RE_USERS.match(path)
    if m_users:
        org_id = unquote(m_users.group("orgId"))
        if method == "POST":
            return _handle_create_or_update_user(event, org_id, is_update=False)
        if method == "PUT":
            return _handle_create_or_update_user(event, org_id, is_update=True)
        if method == "GET":
            return _handle_list_users(org_id)
        return _error(405, f"Method {method} not allowed on users.", "METHOD_NOT_ALLOWED", origin)

    m_org = _RE_ORGANIZATION.match(path)
    if m_org:
        if method == "GET":
            return _handle_get_organization(unquote(m_org.group("orgId")))
        return _error(405, f"Method {method} not allowed. Use GET.", "METHOD_NOT_ALLOWED", origin)

    return _error(404, f"No route matched: {method} {path}", "NOT_FOUND", origin)


# ---------------------------------------------------------------------------
# Main Lambda handler
# ---------------------------------------------------------------------------

def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    method, path = _path_method(event)
    origin = _get_config().cors_origin

    if method == "OPTIONS":
        return {"statusCode": 204, "headers": _cors_headers(origin), "body": ""}

    logger.info("[INFO] route method=%s path=%s", method, path)
    try:
        return _route(method, path, event)
    except DirectoryError as exc:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", method, path, exc.message)
        else:
            logger.info("[INFO] %s %s rejected (%d): %s", method, path, exc.status_code, exc.message)
        return _error_from_exception(exc, origin)
    except Exception as exc:
        logger.exception("Unhandled error for %s %s", method, path)
        return _error(500, "Internal server error.", "INTERNAL_ERROR", origin, detail=str(exc))
