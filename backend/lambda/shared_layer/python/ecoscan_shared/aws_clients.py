"""ecoscan_shared.aws_clients — Lazy-singleton DynamoDB client.

The client is created on first call and cached for the lifetime of the
Lambda container, so cold starts only pay boto3 construction cost when a
request actually touches the store.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from ecoscan_shared import config

_ddb = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        kwargs = {}
        if config.DYNAMODB_ENDPOINT_URL:
            kwargs["endpoint_url"] = config.DYNAMODB_ENDPOINT_URL
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or config.DYNAMODB_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
            **kwargs,
        )
    return _ddb


def _reset_clients() -> None:
    global _ddb
    _ddb = None
