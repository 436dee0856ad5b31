"""directory_shared.aws_clients — boto3 client construction for DynamoDB and SQS.

Offline runs (DynamoDB Local, a local SQS endpoint) get explicit endpoints and
dummy credentials so botocore never looks for real AWS credentials.
"""

from __future__ import annotations

from typing import Any, Dict

import boto3
from botocore.config import Config

from directory_shared.config import DirectoryConfig

_OFFLINE_ACCESS_KEY = "test"
_OFFLINE_SECRET_KEY = "test"


def _client_kwargs(config: DirectoryConfig, endpoint: Any, max_attempts: int) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "region_name": config.region,
        "config": Config(retries={"max_attempts": max_attempts, "mode": "standard"}),
    }
    if endpoint:
        kwargs["endpoint_url"] = endpoint
        kwargs["aws_access_key_id"] = _OFFLINE_ACCESS_KEY
        kwargs["aws_secret_access_key"] = _OFFLINE_SECRET_KEY
    return kwargs


def build_ddb_client(config: DirectoryConfig):
    """Create a low-level DynamoDB client for the given configuration."""
    return boto3.client("dynamodb", **_client_kwargs(config, config.dynamodb_endpoint, 5))


def build_sqs_client(config: DirectoryConfig):
    """Create an SQS client for the given configuration."""
    return boto3.client("sqs", **_client_kwargs(config, config.sqs_endpoint, 3))
