"""
Pydantic schemas for request/response validation.

This module contains:
- The intake submission model and its validator
- Tagged status transitions accepted by the record store
- Response models for API responses
"""

import re
from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator

from companion.errors import FieldError, SubmissionValidationError
from companion.models import MessageCategory, RequestStatus


# Leading +, first digit 1-9, then 1-14 more digits
E164_PATTERN = re.compile(r"^\+[1-9][0-9]{1,14}$")


def is_e164(value: str) -> bool:
    return bool(E164_PATTERN.match(value))


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SubmissionRequest(BaseModel):
    """
    Pydantic model for validating incoming companion-message submissions.

    Validates:
    - requester_name, elder_name, requester_contact: non-empty strings
    - elder_phone: E.164 format
    - message_type: one of birthday, holiday, check_in, encouragement, other
    - elder_age: integer >= 0
    - elder_personality: at least 10 characters
    - both consent flags: strictly true
    - verification_token: non-empty string
    """
    requester_name: str = Field(..., min_length=1)
    elder_name: str = Field(..., min_length=1)
    elder_phone: str = Field(..., description="Recipient phone number in E.164 format")
    message_type: MessageCategory
    message_type_other: Optional[str] = None
    elder_age: int = Field(..., ge=0)
    elder_personality: str = Field(..., min_length=10)
    requester_contact: str = Field(..., min_length=1)
    consent_elder_confirmed: StrictBool
    consent_no_impersonation: StrictBool
    verification_token: str = Field(..., min_length=1)

    model_config = {
        "extra": "ignore",
        "json_schema_extra": {
            "examples": [
                {
                    "requester_name": "Alex Smith",
                    "elder_name": "Margaret",
                    "elder_phone": "+14155550100",
                    "message_type": "birthday",
                    "elder_age": 84,
                    "elder_personality": "Cheerful, loves gardening and crosswords",
                    "requester_contact": "alex@example.com",
                    "consent_elder_confirmed": True,
                    "consent_no_impersonation": True,
                    "verification_token": "token-from-widget",
                }
            ]
        },
    }

    @field_validator("elder_phone")
    @classmethod
    def validate_e164_format(cls, v: str) -> str:
        if not is_e164(v):
            raise ValueError("Phone must be in E.164 format")
        return v

    @field_validator("consent_elder_confirmed", "consent_no_impersonation")
    @classmethod
    def validate_consent_given(cls, v: bool, info) -> bool:
        if v is not True:
            raise ValueError(f"{info.field_name} must be true")
        return v


def _field_errors(exc: ValidationError) -> List[FieldError]:
    details = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else "body"
        message = error.get("msg", "Invalid value")
        # pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append(FieldError(field=field, message=message))
    return details


def validate_submission(raw: Any) -> SubmissionRequest:
    """
    Validate a raw submission against the intake schema.

    Every violation is collected in one pass. Pure: no I/O.

    Raises:
        SubmissionValidationError: with one FieldError per violation
    """
    try:
        return SubmissionRequest.model_validate(raw)
    except ValidationError as e:
        raise SubmissionValidationError(_field_errors(e)) from e


# =============================================================================
# Status Transitions
# =============================================================================

class MarkQueued(BaseModel):
    """pending -> queued; stamps processed_at."""
    status: Literal[RequestStatus.QUEUED] = RequestStatus.QUEUED
    processed_at: Optional[datetime] = None


class MarkSent(BaseModel):
    """queued -> sent; stamps sent_at."""
    status: Literal[RequestStatus.SENT] = RequestStatus.SENT
    sent_at: Optional[datetime] = None


class MarkFailed(BaseModel):
    status: Literal[RequestStatus.FAILED] = RequestStatus.FAILED
    error_message: str


class MarkRejected(BaseModel):
    status: Literal[RequestStatus.REJECTED] = RequestStatus.REJECTED
    error_message: str


StatusTransition = Union[MarkQueued, MarkSent, MarkFailed, MarkRejected]
TerminalTransition = Union[MarkSent, MarkFailed, MarkRejected]


# =============================================================================
# Pydantic Response Models
# =============================================================================

class CreateRequestResponse(BaseModel):
    """Response model for an accepted submission."""
    success: bool = True
    message: str = "Request submitted successfully"
    request_id: str = Field(..., description="Identifier of the queued request")


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: str = Field(..., description="Error description")
    details: Optional[List[FieldErrorResponse]] = None


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
