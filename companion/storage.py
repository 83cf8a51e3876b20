import logging
from contextlib import contextmanager
from typing import Any, Generator, List, Mapping, Optional

from sqlalchemy import create_engine, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from companion.errors import StatusConflictError, StoreError
from companion.models import (
    Base,
    ConsentRecord,
    ConsentType,
    DispatchRecord,
    DispatchStatus,
    IntakeRequest,
    RequestStatus,
    utcnow,
)
from companion.schemas import MarkQueued, MarkSent, StatusTransition, TerminalTransition

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("requests", "consent_records", "dispatch_records")


class Store:
    """
    Typed access to the three record types.

    Every operation runs in its own short session and commits before
    returning, so a later read from any process sees the write.
    Business rules (consent, impersonation) are not enforced here.
    """

    def __init__(self, database_url: str, echo: bool = False):
        # check_same_thread=False is required for SQLite under FastAPI's threadpool
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.database_url = database_url
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def init_db(self) -> None:
        """
        Create all tables. Called at API startup and before each worker cycle.
        """
        logger.debug("Initializing record store tables")
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StoreError("init_db", str(e)) from e
        logger.info("Database initialized successfully")

    def dispose(self) -> None:
        self.engine.dispose()

    def check_health(self) -> bool:
        """
        Check that the store is reachable and all tables exist.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            with self.SessionLocal() as db:
                db.execute(text("SELECT 1"))
            existing = set(inspect(self.engine).get_table_names())
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True

    @contextmanager
    def _session(self, operation: str, request_id: Optional[str] = None) -> Generator[Session, None, None]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Store operation failed: {operation}",
                extra={"operation": operation, "intake_request_id": request_id, "error": str(e)},
            )
            raise StoreError(operation, str(e), request_id) from e
        finally:
            db.close()

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(
        self,
        fields: Mapping[str, Any],
        status: RequestStatus = RequestStatus.PENDING,
    ) -> IntakeRequest:
        """
        Insert a new request and return the stored row.

        Args:
            fields: column values (requester/recipient fields, consent flags, token)
            status: initial status, pending unless the caller says otherwise
        """
        with self._session("create_request") as db:
            row = IntakeRequest(**dict(fields), status=RequestStatus(status).value)
            db.add(row)
            db.flush()
            logger.info(f"Request created: {row.id}")
            return row

    def get_request(self, request_id: str) -> Optional[IntakeRequest]:
        with self._session("get_request", request_id) as db:
            return db.get(IntakeRequest, request_id)

    def _apply_transition(
        self,
        db: Session,
        request_id: str,
        transition: StatusTransition,
        expected_status: Optional[RequestStatus],
        operation: str,
    ) -> None:
        now = utcnow()
        values = {"status": transition.status.value, "updated_at": now}
        if isinstance(transition, MarkQueued):
            values["processed_at"] = transition.processed_at or now
        elif isinstance(transition, MarkSent):
            values["sent_at"] = transition.sent_at or now
        else:
            values["error_message"] = transition.error_message

        stmt = update(IntakeRequest).where(IntakeRequest.id == request_id)
        if expected_status is not None:
            stmt = stmt.where(IntakeRequest.status == RequestStatus(expected_status).value)
        result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))

        if result.rowcount == 0:
            if expected_status is not None:
                raise StatusConflictError(
                    operation,
                    f"request {request_id} is not {RequestStatus(expected_status).value}",
                    request_id,
                )
            raise StoreError(operation, f"request {request_id} not found", request_id)

    def update_request_status(
        self,
        request_id: str,
        transition: StatusTransition,
        expected_status: Optional[RequestStatus] = None,
    ) -> IntakeRequest:
        """
        Apply a status transition to one request.

        queued stamps processed_at, sent stamps sent_at, failed and rejected
        overwrite error_message. With expected_status the update only applies
        while the row still has that status.

        Raises:
            StatusConflictError: expected_status given and the row no longer matches
            StoreError: row missing or backend failure
        """
        with self._session("update_request_status", request_id) as db:
            self._apply_transition(db, request_id, transition, expected_status, "update_request_status")
            row = db.get(IntakeRequest, request_id, populate_existing=True)
            logger.info(f"Request {request_id} status -> {transition.status.value}")
            return row

    def record_outcome(
        self,
        request_id: str,
        transition: TerminalTransition,
        sent_to: str,
        provider_message_id: Optional[str] = None,
        message_content: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> DispatchRecord:
        """
        Move a queued request to its terminal status and write its dispatch
        record in one transaction. Either both land or neither does.

        Raises:
            StatusConflictError: the request is no longer queued
            StoreError: backend failure; the request stays queued
        """
        with self._session("record_outcome", request_id) as db:
            self._apply_transition(db, request_id, transition, RequestStatus.QUEUED, "record_outcome")
            row = self._insert_dispatch_record(
                db,
                request_id=request_id,
                status=DispatchStatus(transition.status.value),
                sent_to=sent_to,
                provider_message_id=provider_message_id,
                message_content=message_content,
                error_message=error_message,
            )
            logger.info(f"Request {request_id} status -> {transition.status.value}")
            return row

    def list_queued_requests(self, limit: int = 10) -> List[IntakeRequest]:
        """
        Return up to `limit` queued requests, oldest first.
        """
        with self._session("list_queued_requests") as db:
            stmt = (
                select(IntakeRequest)
                .where(IntakeRequest.status == RequestStatus.QUEUED.value)
                .order_by(IntakeRequest.created_at.asc(), IntakeRequest.id.asc())
                .limit(limit)
            )
            rows = list(db.scalars(stmt))
            logger.debug(f"Fetched {len(rows)} queued request(s)")
            return rows

    # =========================================================================
    # Consent records
    # =========================================================================

    def create_consent_record(
        self,
        request_id: str,
        consent_type: ConsentType,
        consented: bool,
        origin_address: Optional[str] = None,
        client_signature: Optional[str] = None,
    ) -> ConsentRecord:
        if not request_id:
            raise StoreError("create_consent_record", "request_id is required")

        with self._session("create_consent_record", request_id) as db:
            row = ConsentRecord(
                request_id=request_id,
                consent_type=ConsentType(consent_type).value,
                consented=consented,
                origin_address=origin_address,
                client_signature=client_signature,
            )
            db.add(row)
            db.flush()
            return row

    def list_consent_records(self, request_id: str) -> List[ConsentRecord]:
        with self._session("list_consent_records", request_id) as db:
            stmt = (
                select(ConsentRecord)
                .where(ConsentRecord.request_id == request_id)
                .order_by(ConsentRecord.created_at.asc())
            )
            return list(db.scalars(stmt))

    # =========================================================================
    # Dispatch records
    # =========================================================================

    def _insert_dispatch_record(self, db: Session, **fields) -> DispatchRecord:
        fields["status"] = DispatchStatus(fields["status"]).value
        row = DispatchRecord(**fields)
        db.add(row)
        db.flush()
        return row

    def create_dispatch_record(
        self,
        request_id: str,
        status: DispatchStatus,
        sent_to: str,
        provider_message_id: Optional[str] = None,
        message_content: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> DispatchRecord:
        with self._session("create_dispatch_record", request_id) as db:
            return self._insert_dispatch_record(
                db,
                request_id=request_id,
                status=status,
                sent_to=sent_to,
                provider_message_id=provider_message_id,
                message_content=message_content,
                error_message=error_message,
            )

    def list_dispatch_records(self, request_id: str) -> List[DispatchRecord]:
        with self._session("list_dispatch_records", request_id) as db:
            stmt = (
                select(DispatchRecord)
                .where(DispatchRecord.request_id == request_id)
                .order_by(DispatchRecord.created_at.asc())
            )
            return list(db.scalars(stmt))
