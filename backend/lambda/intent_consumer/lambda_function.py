#!/usr/bin/env python3
"""intent_consumer/lambda_function.py — Apply queued directory intents.

Triggered by the OrganizationUserQueue SQS event source mapping (batch size
10, 300-second visibility timeout). Each record body is an intent published by
directory_api; records are applied in the order received.

Failure policy:
  - malformed / unknown intents are logged and dropped
  - a DynamoDB failure raises out of the handler; Lambda then returns the
    whole batch to the queue and it is redelivered after the visibility
    timeout. Intents applied before the failure are applied again on
    redelivery, which is safe because every apply is an identity-keyed
    overwrite.

For local development without an event source mapping, run this module
directly to long-poll the queue:

  IS_OFFLINE=true ORGANIZATION_USER_QUEUE_URL=... python3 lambda_function.py --iterations 0

Environment variables:
  ORGANIZATIONS_TABLE           default: Organizations
  USERS_TABLE                   default: Users
  ORGANIZATION_USER_QUEUE_URL   intent queue URL (poll mode only)
  DYNAMODB_REGION               default: eu-north-1
  IS_OFFLINE                    use DynamoDB Local / local SQS endpoints
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from directory_shared.aws_clients import build_ddb_client, build_sqs_client
from directory_shared.config import DirectoryConfig
from directory_shared.consumer import BatchResult, IntentConsumer
from directory_shared.queue import IntentQueue, QueueMessage
from directory_shared.store import RecordStore

# ---------------------------------------------------------------------------
# Logging setup
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


def _get_consumer() -> IntentConsumer:
    return IntentConsumer(_get_store())


# ---------------------------------------------------------------------------
# SQS event handling
# ---------------------------------------------------------------------------

def _messages_from_event(event: Dict[str, Any]) -> List[QueueMessage]:
    records = event.get("Records") or []
    return [QueueMessage.from_sqs_record(r) for r in records if isinstance(r, dict)]


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    messages = _messages_from_event(event)
    logger.info("[INFO] SQS intent batch received (%d records)", len(messages))
    result = _get_consumer().process_messages(messages)
    logger.info("[INFO] Batch done: applied=%d skipped=%d", len(result.applied), len(result.skipped))
    return result.as_dict()


# ---------------------------------------------------------------------------
# Poll mode (local development)
# ---------------------------------------------------------------------------

def poll_queue(max_messages: Optional[int] = None) -> BatchResult:
    """Receive one batch, apply it, and delete each message once handled.

    On a store failure the exception propagates and the remaining messages
    stay unacknowledged until their visibility timeout expires.
    """
    queue = _get_queue()
    messages = queue.receive(max_messages)
    if not messages:
        return BatchResult()
    return _get_consumer().process_messages(messages, on_done=queue.acknowledge)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Drain the directory intent queue.")
    parser.add_argument("--max-messages", type=int, default=None, help="Messages per receive (1-10).")
    parser.add_argument(
        "--iterations",
        type=int,
        default=1,
        help="Receive/apply cycles to run; 0 keeps polling until interrupted.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    done = 0
    try:
        while args.iterations == 0 or done < args.iterations:
            result = poll_queue(args.max_messages)
            if result.applied or result.skipped:
                logger.info("[INFO] Poll applied=%d skipped=%d", len(result.applied), len(result.skipped))
            done += 1
    except KeyboardInterrupt:
        logger.info("[INFO] Poller interrupted after %d iterations", done)
    return 0


if __name__ == "__main__":
    sys.exit(main())
