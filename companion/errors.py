"""
Exception types shared by the intake path and the dispatch worker.

Consent and impersonation rejections are deliberately absent: they are
business outcomes recorded as ``rejected`` rows, not errors.
"""

from dataclasses import dataclass
from typing import List, Optional


class StoreError(Exception):
    """The record store could not complete an operation."""

    def __init__(self, operation: str, message: str, request_id: Optional[str] = None):
        self.operation = operation
        self.request_id = request_id
        super().__init__(f"{operation} failed: {message}")


class StatusConflictError(StoreError):
    """A conditional status update matched no row."""


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class SubmissionValidationError(Exception):
    """Raised with every field violation found in a submission."""

    def __init__(self, details: List[FieldError]):
        self.details = details
        super().__init__(f"{len(details)} field(s) failed validation")


class VerificationFailedError(Exception):
    """The human-verification token was rejected."""


class TransportError(Exception):
    """The messaging provider refused or failed to send a message."""
