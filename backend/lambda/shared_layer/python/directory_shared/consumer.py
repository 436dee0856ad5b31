"""directory_shared.consumer — Apply queued intents to DynamoDB.

Delivery is at-least-once and unordered across batches, so every apply is
keyed by entity identity and reproduces the same record when repeated:

  createOrganization / createUser   full put of the carried record
  updateOrganization / updateUser   SET of the carried fields plus the
                                    carried updatedAt (never the apply clock)

Store errors abort the batch and propagate so SQS redelivers it. Intents
applied earlier in the batch stay applied. Malformed or unknown intents are
logged and skipped; retrying them would never succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from directory_shared.errors import UnrecognizedIntentError
from directory_shared.intents import (
    CreateOrganization,
    CreateUser,
    Intent,
    UpdateOrganization,
    UpdateUser,
    parse_intent,
)
from directory_shared.queue import QueueMessage
from directory_shared.serialization import _emit_structured_log
from directory_shared.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "applied": len(self.applied),
            "skipped": len(self.skipped),
            "applied_message_ids": list(self.applied),
            "skipped_message_ids": list(self.skipped),
        }


class IntentConsumer:
    def __init__(self, store: RecordStore):
        self._store = store

    def apply(self, intent: Intent) -> None:
        if isinstance(intent, CreateOrganization):
            self._store.put_organization(intent.to_item())
        elif isinstance(intent, UpdateOrganization):
            self._store.update_organization(intent.org_id, intent.changed_fields())
        elif isinstance(intent, CreateUser):
            self._store.put_user(intent.to_item())
        elif isinstance(intent, UpdateUser):
            self._store.update_user(intent.user_id, intent.changed_fields())
        else:
            raise UnrecognizedIntentError(f"No apply rule for {type(intent).__name__}.")

    def process_messages(
        self,
        messages: Iterable[QueueMessage],
        on_done: Optional[Callable[[QueueMessage], None]] = None,
    ) -> BatchResult:
        """Apply messages in order.

        ``on_done`` runs after each message is applied or skipped (the poller
        deletes the message there). It is not called for a message whose
        apply raised.
        """
        result = BatchResult()
        for message in messages:
            try:
                intent = parse_intent(message.body)
                self.apply(intent)
            except UnrecognizedIntentError as exc:
                logger.warning("[WARNING] Skipping message %s: %s", message.message_id, exc)
                _emit_structured_log(
                    component="consumer",
                    event="intent_skipped",
                    message_id=message.message_id,
                    error_code=exc.code,
                )
                result.skipped.append(message.message_id)
            except Exception:
                logger.exception(
                    "Applying message %s failed; aborting batch after %d applied",
                    message.message_id,
                    len(result.applied),
                )
                raise
            else:
                _emit_structured_log(
                    component="consumer",
                    event="intent_applied",
                    operation=intent.operation,
                    entity_id=intent.entity_id,
                    message_id=message.message_id,
                )
                result.applied.append(message.message_id)
            if on_done is not None:
                on_done(message)
        return result
