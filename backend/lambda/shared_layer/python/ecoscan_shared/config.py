"""ecoscan_shared.config — Environment configuration shared by all Lambdas.

Values are read once at import time; tests override module attributes
directly where needed.
"""

from __future__ import annotations

import logging
import os

BINS_TABLE: str = os.environ.get("BINS_TABLE", "ecoscan-bins")
STATUS_UPDATES_TABLE: str = os.environ.get("STATUS_UPDATES_TABLE", "ecoscan-status-updates")
LOCATIONS_TABLE: str = os.environ.get("LOCATIONS_TABLE", "ecoscan-locations")
QR_CODES_TABLE: str = os.environ.get("QR_CODES_TABLE", "ecoscan-qrcodes")
STATUS_UPDATES_BIN_INDEX: str = os.environ.get("STATUS_UPDATES_BIN_INDEX", "binId-timestamp-index")

DYNAMODB_REGION: str = os.environ.get("DYNAMODB_REGION", "eu-central-1")
# Points the client at a local DynamoDB (docker / localstack) when set.
DYNAMODB_ENDPOINT_URL: str = os.environ.get("DYNAMODB_ENDPOINT_URL", "")

CORS_ORIGIN: str = os.environ.get("CORS_ORIGIN", "*")
PUBLIC_APP_URL: str = os.environ.get("PUBLIC_APP_URL", "https://ecoscan.example.com").rstrip("/")

COGNITO_USER_POOL_ID: str = os.environ.get("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID: str = os.environ.get("COGNITO_CLIENT_ID", "")
ADMIN_GROUP: str = os.environ.get("ADMIN_GROUP", "ADMIN")

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()


def is_local_development() -> bool:
    return bool(DYNAMODB_ENDPOINT_URL)


def configure_logging(name: str = "") -> logging.Logger:
    """Return a logger at LOG_LEVEL.

    The Lambda runtime installs its own root handler, so only the level is
    set here.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return logger
