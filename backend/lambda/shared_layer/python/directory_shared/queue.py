"""directory_shared.queue — SQS adapter for the intent queue.

Delivery is at-least-once; receivers must delete each message after applying
it, otherwise it becomes visible again once the visibility timeout expires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from directory_shared.config import DirectoryConfig
from directory_shared.errors import TransientQueueError
from directory_shared.intents import Intent, to_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    message_id: str
    body: str
    receipt_handle: Optional[str] = None

    @classmethod
    def from_sqs_record(cls, record: Dict[str, Any]) -> "QueueMessage":
        """Build from a Lambda SQS event record (``messageId``/``body``)."""
        return cls(
            message_id=str(record.get("messageId") or "unknown"),
            body=record.get("body") or "",
            receipt_handle=record.get("receiptHandle"),
        )

    @classmethod
    def from_receive(cls, message: Dict[str, Any]) -> "QueueMessage":
        """Build from a ``receive_message`` entry (``MessageId``/``Body``)."""
        return cls(
            message_id=str(message.get("MessageId") or "unknown"),
            body=message.get("Body") or "",
            receipt_handle=message.get("ReceiptHandle"),
        )


class IntentQueue:
    def __init__(self, sqs, config: DirectoryConfig):
        self._sqs = sqs
        self._config = config

    def _queue_url(self) -> str:
        if not self._config.queue_url:
            raise TransientQueueError("ORGANIZATION_USER_QUEUE_URL is not configured.")
        return self._config.queue_url

    def publish(self, intent: Intent) -> str:
        """Send one intent; returns the SQS message id."""
        queue_url = self._queue_url()
        try:
            resp = self._sqs.send_message(
                QueueUrl=queue_url,
                MessageBody=to_message(intent),
                MessageAttributes={
                    "operation": {"DataType": "String", "StringValue": intent.operation},
                },
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("SQS send_message failed for %s %s: %s", intent.operation, intent.entity_id, exc)
            raise TransientQueueError(f"Failed to enqueue {intent.operation}.") from exc
        return str(resp.get("MessageId") or "")

    def receive(self, max_messages: Optional[int] = None) -> List[QueueMessage]:
        queue_url = self._queue_url()
        limit = max(1, min(10, max_messages or self._config.queue_batch_size))
        try:
            resp = self._sqs.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=limit,
                WaitTimeSeconds=self._config.queue_wait_seconds,
                VisibilityTimeout=self._config.visibility_timeout,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("SQS receive_message failed: %s", exc)
            raise TransientQueueError("Failed to receive intents.") from exc
        return [QueueMessage.from_receive(m) for m in resp.get("Messages", [])]

    def acknowledge(self, message: QueueMessage) -> None:
        if not message.receipt_handle:
            return
        try:
            self._sqs.delete_message(QueueUrl=self._queue_url(), ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as exc:
            logger.error("SQS delete_message failed for %s: %s", message.message_id, exc)
            raise TransientQueueError(f"Failed to acknowledge message {message.message_id}.") from exc
