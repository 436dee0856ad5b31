"""directory_shared.config — Process configuration resolved from the environment.

The configuration is read once per Lambda container (or CLI run) and passed
explicitly to the store and queue constructors.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}
MAX_RECEIVE_BATCH = 10


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return str(environ.get(name, "")).strip().lower() in _TRUTHY


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = str(environ.get(name, "")).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default


def _first_nonempty_env(environ: Mapping[str, str], *names: str, default: str = "") -> str:
    for name in names:
        value = str(environ.get(name, "")).strip()
        if value:
            return value
    return default


@dataclass(frozen=True)
class DirectoryConfig:
    region: str = "eu-north-1"
    organizations_table: str = "Organizations"
    users_table: str = "Users"
    users_org_index: str = "OrgId-index"
    queue_url: str = ""
    offline: bool = False
    dynamodb_local_port: int = 8000
    sqs_local_endpoint: str = "http://localhost:9324"
    cors_origin: str = "*"
    queue_batch_size: int = MAX_RECEIVE_BATCH
    queue_wait_seconds: int = 1
    visibility_timeout: int = 300

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DirectoryConfig":
        """Build the configuration from environment variables."""
        env = os.environ if environ is None else environ
        batch_size = _env_int(env, "QUEUE_BATCH_SIZE", MAX_RECEIVE_BATCH)
        return cls(
            region=_first_nonempty_env(env, "DYNAMODB_REGION", "AWS_REGION", default="eu-north-1"),
            organizations_table=_first_nonempty_env(env, "ORGANIZATIONS_TABLE", default="Organizations"),
            users_table=_first_nonempty_env(env, "USERS_TABLE", default="Users"),
            users_org_index=_first_nonempty_env(env, "USERS_ORG_INDEX", default="OrgId-index"),
            queue_url=_first_nonempty_env(env, "ORGANIZATION_USER_QUEUE_URL"),
            offline=_env_flag(env, "IS_OFFLINE"),
            dynamodb_local_port=_env_int(env, "DYNAMODB_LOCAL_PORT", 8000),
            sqs_local_endpoint=_first_nonempty_env(env, "SQS_LOCAL_ENDPOINT", default="http://localhost:9324"),
            cors_origin=_first_nonempty_env(env, "CORS_ORIGIN", default="*"),
            queue_batch_size=max(1, min(MAX_RECEIVE_BATCH, batch_size)),
            queue_wait_seconds=max(0, _env_int(env, "QUEUE_WAIT_SECONDS", 1)),
            visibility_timeout=max(0, _env_int(env, "QUEUE_VISIBILITY_TIMEOUT", 300)),
        )

    @property
    def dynamodb_endpoint(self) -> Optional[str]:
        if not self.offline:
            return None
        return f"http://localhost:{self.dynamodb_local_port}"

    @property
    def sqs_endpoint(self) -> Optional[str]:
        if not self.offline:
            return None
        return self.sqs_local_endpoint
