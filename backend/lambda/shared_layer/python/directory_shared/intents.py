"""directory_shared.intents — Queue message model for directory mutations.

An Intent is an immutable, fully specified description of one mutation. The
producer publishes it to SQS and the consumer applies it later without
re-reading the original request.

Wire format (SQS message body)::

    {"operation": "createOrganization", "data": {"orgId": "...", "name": "...", ...}}

Field names inside ``data`` match the DynamoDB attribute names (camelCase).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from directory_shared.errors import UnrecognizedIntentError

CREATE_ORGANIZATION = "createOrganization"
UPDATE_ORGANIZATION = "updateOrganization"
CREATE_USER = "createUser"
UPDATE_USER = "updateUser"


@dataclass(frozen=True)
class CreateOrganization:
    org_id: str
    name: str
    description: str
    created_at: str
    updated_at: str

    operation = CREATE_ORGANIZATION

    @property
    def entity_id(self) -> str:
        return self.org_id

    def to_item(self) -> Dict[str, Any]:
        return {
            "orgId": self.org_id,
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class UpdateOrganization:
    org_id: str
    updated_at: str
    name: Optional[str] = None
    description: Optional[str] = None

    operation = UPDATE_ORGANIZATION

    @property
    def entity_id(self) -> str:
        return self.org_id

    def changed_fields(self) -> Dict[str, Any]:
        """Fields to SET on the stored record, ``updatedAt`` included."""
        fields: Dict[str, Any] = {}
        if self.name is not None:
            fields["name"] = self.name
        if self.description is not None:
            fields["description"] = self.description
        fields["updatedAt"] = self.updated_at
        return fields

    def to_item(self) -> Dict[str, Any]:
        return {"orgId": self.org_id, **self.changed_fields()}


@dataclass(frozen=True)
class CreateUser:
    user_id: str
    org_id: str
    name: str
    email: str
    created_at: str
    updated_at: str

    operation = CREATE_USER

    @property
    def entity_id(self) -> str:
        return self.user_id

    def to_item(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "orgId": self.org_id,
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class UpdateUser:
    user_id: str
    org_id: str
    updated_at: str
    name: Optional[str] = None
    email: Optional[str] = None

    operation = UPDATE_USER

    @property
    def entity_id(self) -> str:
        return self.user_id

    def changed_fields(self) -> Dict[str, Any]:
        """Fields to SET on the stored record, ``updatedAt`` included."""
        fields: Dict[str, Any] = {}
        if self.name is not None:
            fields["name"] = self.name
        if self.email is not None:
            fields["email"] = self.email
        fields["updatedAt"] = self.updated_at
        return fields

    def to_item(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "orgId": self.org_id, **self.changed_fields()}


Intent = Union[CreateOrganization, UpdateOrganization, CreateUser, UpdateUser]


def to_message(intent: Intent) -> str:
    """Render an Intent as an SQS message body."""
    return json.dumps({"operation": intent.operation, "data": intent.to_item()}, sort_keys=True)


def _required_str(data: Dict[str, Any], key: str, operation: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise UnrecognizedIntentError(f"{operation} intent is missing '{key}'.")
    return value


def _optional_str(data: Dict[str, Any], key: str, operation: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnrecognizedIntentError(f"{operation} intent has a non-string '{key}'.")
    return value


def parse_intent(body: Union[str, bytes, Dict[str, Any]]) -> Intent:
    """Parse an SQS message body into an Intent.

    Raises UnrecognizedIntentError for malformed JSON, a non-object body, an
    unknown ``operation`` or missing required fields.
    """
    if isinstance(body, (str, bytes)):
        try:
            message = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UnrecognizedIntentError(f"Intent body is not valid JSON: {exc}") from exc
    else:
        message = body
    if not isinstance(message, dict):
        raise UnrecognizedIntentError("Intent body must be a JSON object.")

    operation = message.get("operation")
    data = message.get("data")
    if not isinstance(data, dict):
        raise UnrecognizedIntentError(f"Intent '{operation}' has no data object.")

    if operation == CREATE_ORGANIZATION:
        return CreateOrganization(
            org_id=_required_str(data, "orgId", operation),
            name=_required_str(data, "name", operation),
            description=_required_str(data, "description", operation),
            created_at=_required_str(data, "createdAt", operation),
            updated_at=_required_str(data, "updatedAt", operation),
        )
    if operation == UPDATE_ORGANIZATION:
        intent = UpdateOrganization(
            org_id=_required_str(data, "orgId", operation),
            updated_at=_required_str(data, "updatedAt", operation),
            name=_optional_str(data, "name", operation),
            description=_optional_str(data, "description", operation),
        )
        if intent.name is None and intent.description is None:
            raise UnrecognizedIntentError(f"{operation} intent changes no fields.")
        return intent
    if operation == CREATE_USER:
        return CreateUser(
            user_id=_required_str(data, "userId", operation),
            org_id=_required_str(data, "orgId", operation),
            name=_required_str(data, "name", operation),
            email=_required_str(data, "email", operation),
            created_at=_required_str(data, "createdAt", operation),
            updated_at=_required_str(data, "updatedAt", operation),
        )
    if operation == UPDATE_USER:
        intent = UpdateUser(
            user_id=_required_str(data, "userId", operation),
            org_id=_required_str(data, "orgId", operation),
            updated_at=_required_str(data, "updatedAt", operation),
            name=_optional_str(data, "name", operation),
            email=_optional_str(data, "email", operation),
        )
        if intent.name is None and intent.email is None:
            raise UnrecognizedIntentError(f"{operation} intent changes no fields.")
        return intent
    raise UnrecognizedIntentError(f"Unknown intent operation: {operation!r}")
