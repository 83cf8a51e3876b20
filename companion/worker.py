"""
Dispatch worker: drains one page of queued requests per invocation.

Run with: python -m companion.worker
Or schedule with cron: */5 * * * * companion-worker

Requests are processed one at a time, oldest first. Each one is re-checked
for consent and impersonation, composed, sent, and moved to a terminal
status with exactly one dispatch record written for the outcome.

Only one worker instance may run at a time. Terminal transitions are
conditional on the row still being queued, so an overlapping instance
fails its status write instead of silently overwriting, but both could
still have sent the message.
"""

import argparse
import logging
import sys
import uuid
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from companion.config import get_settings
from companion.consent import verify_consent
from companion.errors import StoreError, TransportError
from companion.logging_utils import correlation_id_ctx, setup_logging
from companion.messages import generate_message
from companion.metrics import record_dispatch_outcome
from companion.models import DispatchStatus, IntakeRequest
from companion.policy import detect_impersonation
from companion.schemas import MarkFailed, MarkRejected, MarkSent
from companion.storage import Store
from companion.transport import Transport, build_transport

logger = logging.getLogger(__name__)

IMPERSONATION_REASON = "Impersonation attempt detected"
IMPERSONATION_REQUEST_ERROR = "Impersonation attempt detected - message content claims a family relationship"


@dataclass
class CycleSummary:
    fetched: int = 0
    sent: int = 0
    failed: int = 0
    rejected: int = 0
    errors: int = 0

    def count(self, status: DispatchStatus) -> None:
        if status == DispatchStatus.SENT:
            self.sent += 1
        elif status == DispatchStatus.FAILED:
            self.failed += 1
        else:
            self.rejected += 1


class DispatchWorker:
    def __init__(self, store: Store, transport: Transport, batch_size: int = 10):
        self.store = store
        self.transport = transport
        self.batch_size = batch_size

    def run_cycle(self) -> CycleSummary:
        """
        Process one bounded page of queued requests.

        Raises:
            StoreError: the queued page could not be fetched
        """
        summary = CycleSummary()
        page: List[IntakeRequest] = self.store.list_queued_requests(limit=self.batch_size)
        summary.fetched = len(page)

        if not page:
            logger.info("No queued requests to process")
            return summary

        logger.info(f"Found {len(page)} queued request(s)")

        for request in page:
            try:
                status = self.process_request(request)
            except StoreError as e:
                # Outcome not stored; the request is picked up again next cycle if still queued
                summary.errors += 1
                record_dispatch_outcome("error")
                logger.error(
                    f"Could not record outcome: {e}",
                    extra={"intake_request_id": request.id, "operation": e.operation},
                )
                continue

            summary.count(status)
            record_dispatch_outcome(status.value)

        logger.info(
            "Processing complete",
            extra={
                "fetched": summary.fetched,
                "sent": summary.sent,
                "failed": summary.failed,
                "rejected": summary.rejected,
                "errors": summary.errors,
            },
        )
        return summary

    def process_request(self, request: IntakeRequest) -> DispatchStatus:
        """Drive one queued request to a terminal status."""
        logger.info("Processing request", extra={"intake_request_id": request.id})

        check = verify_consent(self.store, request.id)
        if not check.valid:
            logger.info(
                f"Consent verification failed: {check.reason}",
                extra={"intake_request_id": request.id},
            )
            return self._reject(
                request,
                request_error=f"Consent verification failed: {check.reason}",
                reason=check.reason,
            )

        current = check.request
        if detect_impersonation(
            current.elder_name,
            current.message_type,
            current.message_type_other,
            current.elder_personality,
        ):
            logger.info("Impersonation detected - rejecting", extra={"intake_request_id": current.id})
            return self._reject(current, request_error=IMPERSONATION_REQUEST_ERROR, reason=IMPERSONATION_REASON)

        content = generate_message(
            current.elder_name,
            current.message_type,
            current.message_type_other,
            current.elder_personality,
        )

        try:
            provider_id = self.transport.send(current.elder_phone, content)
        except TransportError as e:
            error = str(e) or "Transport error"
            logger.warning(f"Failed to send: {error}", extra={"intake_request_id": current.id})
            self.store.record_outcome(
                current.id,
                MarkFailed(error_message=error),
                sent_to=current.elder_phone,
                message_content=content,
                error_message=error,
            )
            return DispatchStatus.FAILED

        self.store.record_outcome(
            current.id,
            MarkSent(),
            sent_to=current.elder_phone,
            provider_message_id=provider_id,
            message_content=content,
        )
        logger.info("Message sent successfully", extra={"intake_request_id": current.id})
        return DispatchStatus.SENT

    def _reject(self, request: IntakeRequest, request_error: str, reason: Optional[str]) -> DispatchStatus:
        self.store.record_outcome(
            request.id,
            MarkRejected(error_message=request_error),
            sent_to=request.elder_phone,
            error_message=reason,
        )
        return DispatchStatus.REJECTED


def _batch_size(value: str) -> int:
    size = int(value)
    if size < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {size}")
    return size


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Send queued companion messages (one cycle).")
    parser.add_argument("--limit", type=_batch_size, default=None, help="Maximum requests to process this cycle")
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging("INFO")
        logger.critical(f"Invalid configuration: {e}")
        return 1

    setup_logging(settings.LOG_LEVEL)
    token = correlation_id_ctx.set(f"cycle-{uuid.uuid4()}")

    store = Store(settings.DATABASE_URL)
    try:
        store.init_db()
        worker = DispatchWorker(
            store,
            build_transport(settings),
            batch_size=settings.WORKER_BATCH_SIZE if args.limit is None else args.limit,
        )
        worker.run_cycle()
    except StoreError as e:
        logger.critical(f"Error processing messages: {e}")
        return 1
    finally:
        store.dispose()
        correlation_id_ctx.reset(token)

    logger.info("Worker completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
