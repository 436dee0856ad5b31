"""directory_shared.errors — Error taxonomy for the directory service.

Each error carries the HTTP status and error code the API Lambda responds
with. ``UnrecognizedIntentError`` never reaches HTTP; the consumer logs it and
drops the message.
"""

from __future__ import annotations


class DirectoryError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DirectoryError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DirectoryError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DirectoryError):
    status_code = 409
    code = "CONFLICT"


class TransientStoreError(DirectoryError):
    """DynamoDB call failed; safe to retry."""


class TransientQueueError(DirectoryError):
    """SQS call failed; safe to retry."""


class UnrecognizedIntentError(DirectoryError):
    """Queue message is malformed or names an unknown operation."""

    code = "UNRECOGNIZED_INTENT"
