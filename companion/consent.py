import logging
from dataclasses import dataclass
from typing import Optional

from companion.models import ConsentType, IntakeRequest
from companion.storage import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsentCheck:
    """Outcome of re-verifying consent for a stored request."""
    valid: bool
    reason: Optional[str] = None
    request: Optional[IntakeRequest] = None


def record_consent(
    store: Store,
    request_id: str,
    recipient_consent: bool,
    no_impersonation: bool,
    origin_address: str,
    client_signature: str,
) -> None:
    """
    Write one consent audit row per consent type.

    The given values are logged as-is, false included. Store errors propagate.
    """
    for consent_type, consented in (
        (ConsentType.RECIPIENT_CONSENT, recipient_consent),
        (ConsentType.NO_IMPERSONATION, no_impersonation),
    ):
        store.create_consent_record(
            request_id=request_id,
            consent_type=consent_type,
            consented=consented,
            origin_address=origin_address,
            client_signature=client_signature,
        )
    logger.info(f"Consent recorded for request {request_id}")


def verify_consent(store: Store, request_id: str) -> ConsentCheck:
    """
    Re-read the request and its audit rows and decide whether consent holds.

    Both stored flags must be true and a consented=true audit row must exist
    for each consent type. Store errors propagate.
    """
    request = store.get_request(request_id)
    if request is None:
        return ConsentCheck(False, "Request record not found")

    if not request.consent_elder_confirmed:
        return ConsentCheck(False, "Recipient consent not confirmed", request)

    if not request.consent_no_impersonation:
        return ConsentCheck(False, "No-impersonation consent not confirmed", request)

    given = {
        record.consent_type
        for record in store.list_consent_records(request_id)
        if record.consented
    }
    missing = [c.value for c in ConsentType if c.value not in given]
    if missing:
        return ConsentCheck(False, f"Consent records incomplete: missing {', '.join(missing)}", request)

    return ConsentCheck(True, request=request)
