import json
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from companion.config import Settings, get_settings
from companion.errors import StoreError, SubmissionValidationError, VerificationFailedError
from companion.intake import submit
from companion.logging_utils import RequestLoggingMiddleware, log_intake_data, setup_logging
from companion.metrics import get_metrics, get_metrics_content_type, record_intake_outcome
from companion.notifications import notify_submission_received
from companion.schemas import CreateRequestResponse, ErrorResponse, HealthResponse
from companion.storage import Store
from companion.verification import VerificationGate

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Failed to save. Please try again."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: build the record store and verification gate, create tables
    - Shutdown: release database connections
    """
    settings = app.state.settings
    store = Store(settings.DATABASE_URL)
    store.init_db()
    app.state.store = store
    app.state.gate = VerificationGate.from_settings(settings)
    yield
    store.dispose()


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Companion Messaging API",
        description="Intake service for consented, non-impersonating companion messages",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(router)
    return app


# =============================================================================
# Dependencies
# =============================================================================

def get_store(request: Request) -> Store:
    return request.app.state.store


def get_gate(request: Request) -> VerificationGate:
    return request.app.state.gate


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def client_origin(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def error_response(status_code: int, error: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


@router.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response, store: Store = Depends(get_store)) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the record store is reachable
    and all three tables exist. Otherwise returns 503.
    """
    if not await run_in_threadpool(store.check_health):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


@router.post(
    "/create-request",
    response_model=CreateRequestResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Validation or verification failed"},
        500: {"model": ErrorResponse, "description": "Request could not be saved"},
    },
)
async def create_request(
    request: Request,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    gate: VerificationGate = Depends(get_gate),
    settings: Settings = Depends(get_app_settings),
):
    """
    Accept a companion-message submission.

    - Validates every field and reports all violations at once
    - Checks the human-verification token
    - Stores the request, writes the consent audit trail, queues it
    - Sends a confirmation notice in the background
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.info(f"Invalid JSON: {e}")
        record_intake_outcome("validation_error")
        log_intake_data(request, result="validation_error")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            [{"field": "body", "message": "Request body must be valid JSON"}],
        )

    origin_address = client_origin(request)
    client_signature = request.headers.get("user-agent") or "unknown"

    try:
        intake = await run_in_threadpool(submit, body, origin_address, client_signature, store, gate)
    except SubmissionValidationError as e:
        logger.info(f"Validation failed: {len(e.details)} field error(s)")
        record_intake_outcome("validation_error")
        log_intake_data(request, result="validation_error")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            [detail.to_dict() for detail in e.details],
        )
    except VerificationFailedError:
        record_intake_outcome("verification_failed")
        log_intake_data(request, result="verification_failed")
        return error_response(status.HTTP_400_BAD_REQUEST, "verification failed")
    except StoreError as e:
        logger.error(f"Failed to save request: {e}")
        record_intake_outcome("store_error")
        log_intake_data(request, result="store_error", intake_request_id=e.request_id)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, SAVE_FAILED_MESSAGE)
    except Exception as e:
        logger.exception(f"Unexpected intake error: {e}")
        log_intake_data(request, result="error")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    background_tasks.add_task(notify_submission_received, settings, intake.requester_contact, intake.id)

    record_intake_outcome("created")
    log_intake_data(request, result="created", intake_request_id=intake.id)
    return CreateRequestResponse(request_id=intake.id)


@router.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


app = create_app()
