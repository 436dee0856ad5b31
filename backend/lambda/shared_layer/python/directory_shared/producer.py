"""directory_shared.producer — Validate mutation requests and enqueue intents.

The producer never writes to DynamoDB. An accepted call publishes exactly one
intent and returns before the consumer applies it, so a read right after a
202 may still see the old state.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from directory_shared.errors import ConflictError, NotFoundError, ValidationError
from directory_shared.intents import (
    CreateOrganization,
    CreateUser,
    Intent,
    UpdateOrganization,
    UpdateUser,
)
from directory_shared.queue import IntentQueue
from directory_shared.serialization import _emit_structured_log, _now_iso
from directory_shared.store import RecordStore
from directory_shared.validation import (
    ValidationOutcome,
    validate_organization_name,
    validate_user_email,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _clean(value: Any, field: str) -> Optional[str]:
    """Strip a request field; blank or missing values become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field}' must be a string.")
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Accepted:
    operation: str
    org_id: str
    user_id: Optional[str] = None
    message_id: str = ""


class MutationProducer:
    def __init__(
        self,
        store: RecordStore,
        queue: IntentQueue,
        clock: Callable[[], str] = _now_iso,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._store = store
        self._queue = queue
        self._clock = clock
        self._id_factory = id_factory

    def _publish(self, intent: Intent) -> str:
        message_id = self._queue.publish(intent)
        _emit_structured_log(
            component="producer",
            event="intent_published",
            operation=intent.operation,
            entity_id=intent.entity_id,
            message_id=message_id,
        )
        return message_id

    def _require_organization(self, org_id: str) -> None:
        if self._store.get_organization(org_id) is None:
            raise NotFoundError(f"Organization '{org_id}' not found.")

    def submit_create_organization(self, name: Any, description: Any) -> Accepted:
        name = _clean(name, "name")
        description = _clean(description, "description")
        if not name or not description:
            raise ValidationError("Organization name and description are required.")

        snapshot = self._store.scan_organizations(name=name)
        if validate_organization_name(name, snapshot) is ValidationOutcome.CONFLICT:
            raise ConflictError(f"An organization named '{name}' already exists.")

        now = self._clock()
        intent = CreateOrganization(
            org_id=self._id_factory(),
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        message_id = self._publish(intent)
        return Accepted(operation=intent.operation, org_id=intent.org_id, message_id=message_id)

    def submit_update_organization(self, org_id: Any, name: Any = None, description: Any = None) -> Accepted:
        org_id = _clean(org_id, "orgId")
        if not org_id:
            raise ValidationError("orgId is required to update an organization.")
        name = _clean(name, "name")
        description = _clean(description, "description")
        if name is None and description is None:
            raise ValidationError("Organization name or description is required for an update.")

        self._require_organization(org_id)

        intent = UpdateOrganization(
            org_id=org_id,
            updated_at=self._clock(),
            name=name,
            description=description,
        )
        message_id = self._publish(intent)
        return Accepted(operation=intent.operation, org_id=org_id, message_id=message_id)

    def submit_create_or_update_user(
        self,
        org_id: Any,
        user_id: Any,
        name: Any,
        email: Any,
        is_update: bool,
    ) -> Accepted:
        org_id = _clean(org_id, "orgId")
        user_id = _clean(user_id, "userId")
        name = _clean(name, "name")
        email = _clean(email, "email")
        if not org_id or not name or not email:
            raise ValidationError("orgId, user name and email are required.")
        if is_update and not user_id:
            raise ValidationError("userId is required in the request body to update a user.")

        self._require_organization(org_id)

        if is_update:
            existing = self._store.get_user(user_id)
            if existing is None or existing.get("orgId") != org_id:
                raise NotFoundError(f"User '{user_id}' not found in organization '{org_id}'.")

        snapshot = self._store.query_users_by_organization(org_id, email=email)
        excluded = user_id if is_update else None
        if validate_user_email(org_id, email, excluded, snapshot) is ValidationOutcome.CONFLICT:
            raise ConflictError(f"A user with email '{email}' already exists in this organization.")

        now = self._clock()
        intent: Intent
        if is_update:
            intent = UpdateUser(user_id=user_id, org_id=org_id, updated_at=now, name=name, email=email)
        else:
            # A client-supplied userId is taken as-is; it is not checked for reuse.
            intent = CreateUser(
                user_id=user_id or self._id_factory(),
                org_id=org_id,
                name=name,
                email=email,
                created_at=now,
                updated_at=now,
            )
        message_id = self._publish(intent)
        return Accepted(
            operation=intent.operation,
            org_id=org_id,
            user_id=intent.user_id,
            message_id=message_id,
        )
