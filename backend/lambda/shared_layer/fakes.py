"""fakes.py — In-memory stand-ins for RecordStore and IntentQueue used by tests.

They follow the same semantics as the DynamoDB/SQS adapters: puts overwrite,
updates create the item when missing (like update_item), and queued messages
stay until acknowledged.
"""

from __future__ import annotations

import copy
import itertools
from typing import Any, Dict, List, Optional

from directory_shared.errors import TransientStoreError
from directory_shared.intents import Intent, to_message
from directory_shared.queue import QueueMessage


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.organizations: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.fail_writes = False
        self.writes: List[str] = []

    def _check_write(self, label: str) -> None:
        if self.fail_writes:
            raise TransientStoreError(f"simulated {label} failure")
        self.writes.append(label)

    def get_organization(self, org_id: str) -> Optional[Dict[str, Any]]:
        item = self.organizations.get(org_id)
        return copy.deepcopy(item) if item is not None else None

    def put_organization(self, item: Dict[str, Any]) -> None:
        self._check_write("put_organization")
        self.organizations[item["orgId"]] = copy.deepcopy(item)

    def update_organization(self, org_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check_write("update_organization")
        item = self.organizations.setdefault(org_id, {"orgId": org_id})
        item.update(copy.deepcopy(fields))
        return copy.deepcopy(item)

    def scan_organizations(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(org)
            for org in self.organizations.values()
            if name is None or org.get("name") == name
        ]

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        item = self.users.get(user_id)
        return copy.deepcopy(item) if item is not None else None

    def put_user(self, item: Dict[str, Any]) -> None:
        self._check_write("put_user")
        self.users[item["userId"]] = copy.deepcopy(item)

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check_write("update_user")
        item = self.users.setdefault(user_id, {"userId": user_id})
        item.update(copy.deepcopy(fields))
        return copy.deepcopy(item)

    def query_users_by_organization(self, org_id: str, email: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(user)
            for user in self.users.values()
            if user.get("orgId") == org_id and (email is None or user.get("email") == email)
        ]


class InMemoryIntentQueue:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.pending: List[QueueMessage] = []
        self.acknowledged: List[str] = []

    def publish(self, intent: Intent) -> str:
        message_id = f"msg-{next(self._ids)}"
        self.pending.append(
            QueueMessage(message_id=message_id, body=to_message(intent), receipt_handle=f"rh-{message_id}")
        )
        return message_id

    def receive(self, max_messages: Optional[int] = None) -> List[QueueMessage]:
        return list(self.pending[: max_messages or 10])

    def acknowledge(self, message: QueueMessage) -> None:
        self.pending = [m for m in self.pending if m.message_id != message.message_id]
        self.acknowledged.append(message.message_id)

    def bodies(self) -> List[str]:
        return [m.body for m in self.pending]

    def as_sqs_event(self) -> Dict[str, Any]:
        return {
            "Records": [
                {
                    "messageId": m.message_id,
                    "receiptHandle": m.receipt_handle,
                    "body": m.body,
                    "eventSource": "aws:sqs",
                }
                for m in self.pending
            ]
        }
