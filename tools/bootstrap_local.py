#!/usr/bin/env python3
"""Create the directory tables and intent queue on local AWS emulators.

Targets DynamoDB Local and a local SQS endpoint (IS_OFFLINE is forced on
unless --aws is given). Safe to re-run: existing tables and queues are kept.

Usage:
  python3 tools/bootstrap_local.py
  python3 tools/bootstrap_local.py --queue-name OrganizationUserQueue-dev
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from directory_shared.aws_clients import build_ddb_client, build_sqs_client
from directory_shared.config import DirectoryConfig
from directory_shared.errors import TransientStoreError
from directory_shared.store import RecordStore

DEFAULT_QUEUE_NAME = "OrganizationUserQueue-dev"
MESSAGE_RETENTION_SECONDS = 345600


def _create_queue(sqs, name: str, visibility_timeout: int) -> str:
    resp = sqs.create_queue(
        QueueName=name,
        Attributes={
            "VisibilityTimeout": str(visibility_timeout),
            "MessageRetentionPeriod": str(MESSAGE_RETENTION_SECONDS),
        },
    )
    return str(resp.get("QueueUrl") or "")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--queue-name", default=DEFAULT_QUEUE_NAME)
    parser.add_argument("--skip-queue", action="store_true", help="Only create the DynamoDB tables.")
    parser.add_argument("--aws", action="store_true", help="Use real AWS endpoints instead of local ones.")
    args = parser.parse_args(argv)

    env = dict(os.environ)
    if not args.aws:
        env["IS_OFFLINE"] = "true"
    config = DirectoryConfig.from_env(env)

    store = RecordStore(build_ddb_client(config), config)
    try:
        created = store.ensure_tables()
    except TransientStoreError as exc:
        print(f"[ERROR] Table bootstrap failed: {exc}")
        return 1
    if created:
        print(f"[OK] Created tables: {', '.join(created)}")
    else:
        print("[OK] Tables already exist.")

    if args.skip_queue:
        return 0

    try:
        queue_url = _create_queue(build_sqs_client(config), args.queue_name, config.visibility_timeout)
    except (BotoCoreError, ClientError) as exc:
        print(f"[ERROR] Queue bootstrap failed: {exc}")
        return 1
    print(f"[OK] Queue ready. export ORGANIZATION_USER_QUEUE_URL={queue_url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
