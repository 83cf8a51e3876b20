"""
SQLAlchemy ORM models for database tables.

This module contains the three record types of the service: intake
requests, the consent audit log and the message dispatch log.
For Pydantic request/response schemas, see schemas.py.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Base class for SQLAlchemy models
Base = declarative_base()


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    REJECTED = "rejected"


class MessageCategory(str, enum.Enum):
    BIRTHDAY = "birthday"
    HOLIDAY = "holiday"
    CHECK_IN = "check_in"
    ENCOURAGEMENT = "encouragement"
    OTHER = "other"


class ConsentType(str, enum.Enum):
    RECIPIENT_CONSENT = "recipient_consent"
    NO_IMPERSONATION = "no_impersonation"


class DispatchStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    REJECTED = "rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class IntakeRequest(Base):
    """
    One companion-message request per submission.

    Table: requests
    Status moves pending -> queued -> sent | failed | rejected.
    """
    __tablename__ = "requests"

    id = Column(String(36), primary_key=True, default=new_id)

    requester_name = Column(String, nullable=False)
    requester_contact = Column(String, nullable=False)

    elder_name = Column(String, nullable=False)
    elder_phone = Column(String(16), nullable=False)
    elder_age = Column(Integer, nullable=False)
    elder_personality = Column(Text, nullable=False)

    message_type = Column(String(32), nullable=False)
    message_type_other = Column(Text, nullable=True)

    consent_elder_confirmed = Column(Boolean, nullable=False)
    consent_no_impersonation = Column(Boolean, nullable=False)
    verification_token = Column(Text, nullable=True)

    status = Column(String(16), nullable=False, default=RequestStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)


class ConsentRecord(Base):
    """
    Append-only consent audit entry. Never updated after insert.

    Table: consent_records
    """
    __tablename__ = "consent_records"

    id = Column(String(36), primary_key=True, default=new_id)
    request_id = Column(String(36), ForeignKey("requests.id"), nullable=False, index=True)
    consent_type = Column(String(32), nullable=False)
    consented = Column(Boolean, nullable=False)
    origin_address = Column(String, nullable=True)
    client_signature = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DispatchRecord(Base):
    """
    Append-only record of one terminal processing attempt.

    Table: dispatch_records
    """
    __tablename__ = "dispatch_records"

    id = Column(String(36), primary_key=True, default=new_id)
    request_id = Column(String(36), ForeignKey("requests.id"), nullable=False, index=True)
    provider_message_id = Column(String, nullable=True)
    status = Column(String(16), nullable=False)
    sent_to = Column(String(16), nullable=False)
    message_content = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
