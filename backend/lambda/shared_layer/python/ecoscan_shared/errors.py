"""ecoscan_shared.errors — Error taxonomy mapped to HTTP status codes.

Store and business code raise these; only the ``lambda_handler`` seam turns
them into responses.
"""

from __future__ import annotations


class InvalidRequest(ValueError):
    """Malformed or missing input. Maps to 400."""

    status_code = 400


class NotFound(LookupError):
    """Well-formed identifier with no matching record. Maps to 404."""

    status_code = 404


class Conflict(RuntimeError):
    """Request clashes with existing records. Maps to 409."""

    status_code = 409


class StoreUnavailable(RuntimeError):
    """Any failure from the DynamoDB access layer. Maps to 500."""

    status_code = 500
