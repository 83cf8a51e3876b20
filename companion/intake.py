import logging
from typing import Any

from companion.consent import record_consent
from companion.errors import StoreError, VerificationFailedError
from companion.models import IntakeRequest, RequestStatus
from companion.schemas import MarkQueued, validate_submission
from companion.storage import Store
from companion.verification import VerificationGate

logger = logging.getLogger(__name__)


def submit(
    raw: Any,
    origin_address: str,
    client_signature: str,
    store: Store,
    gate: VerificationGate,
) -> IntakeRequest:
    """
    Validate, verify, persist and queue one submission.

    Returns the queued request. Nothing is written unless validation and
    the verification gate both pass.

    Raises:
        SubmissionValidationError: one or more fields are invalid
        VerificationFailedError: the verification token was rejected
        StoreError: the request could not be saved or queued
    """
    submission = validate_submission(raw)

    if not gate.verify(submission.verification_token, remote_ip=origin_address):
        raise VerificationFailedError("verification failed")

    fields = submission.model_dump(mode="json")
    request = store.create_request(fields, status=RequestStatus.PENDING)

    try:
        record_consent(
            store,
            request.id,
            recipient_consent=submission.consent_elder_confirmed,
            no_impersonation=submission.consent_no_impersonation,
            origin_address=origin_address,
            client_signature=client_signature,
        )
        request = store.update_request_status(request.id, MarkQueued(), expected_status=RequestStatus.PENDING)
    except StoreError:
        # The row stays pending; the worker only ever reads queued rows
        logger.error(
            "Request left pending after partial intake",
            extra={"intake_request_id": request.id},
        )
        raise

    logger.info(f"Request queued: {request.id}")
    return request
