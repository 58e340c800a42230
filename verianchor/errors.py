"""
Exception taxonomy for the anchoring / verification stack.

Only infrastructure failures and workflow rule breaks are exceptions.
Expected non-authenticity outcomes (no reference, no log entry, missing
fields, hash mismatch) are AuthenticityVerdict values, never raised.
"""
from typing import Optional


class AnchorError(Exception):
    """Base class. Carries the underlying cause when there is one."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


# --- Infrastructure (always raised) ---

class LogUnavailable(AnchorError):
    """Submitting a message to the ordered log failed or was rejected."""


class LogReadError(AnchorError):
    """Transport, timeout or non-2xx talking to the mirror node."""


class ContentFetchError(AnchorError):
    """Content-addressed payload could not be fetched. Not a tamper signal."""


class ContentStoreError(AnchorError):
    """Uploading a payload to content-addressed storage failed."""


# --- Workflow ---

class ClaimNotFound(AnchorError):
    pass


class RecordNotFound(AnchorError):
    pass


class InvalidTransition(AnchorError):
    pass


class AccessDenied(AnchorError):
    """Caller is not a party to the claim or record."""


class RecordValidationFailed(AnchorError):
    """Approval refused because the underlying record did not verify."""

    def __init__(self, message: str, verdict):
        super().__init__(message)
        self.verdict = verdict
