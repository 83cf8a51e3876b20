"""
Prometheus counters for the intake API and the dispatch worker.

The worker is a short-lived process; its counters are only scraped when
it shares a process with the API.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

intake_submissions_total = Counter(
    "intake_submissions_total",
    "Submissions to /create-request by result",
    labelnames=["result"]
)

dispatch_outcomes_total = Counter(
    "dispatch_outcomes_total",
    "Queued requests processed by the worker, by outcome",
    labelnames=["status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    path = path.split("?")[0]
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    request_latency_seconds.labels(method=method, path=path).observe(latency_seconds)


def record_intake_outcome(result: str) -> None:
    """result: created, validation_error, verification_failed or store_error."""
    intake_submissions_total.labels(result=result).inc()


def record_dispatch_outcome(status: str) -> None:
    """
    status: sent, failed, rejected, or error when the outcome could not
    be stored and the request stays queued.
    """
    dispatch_outcomes_total.labels(status=status).inc()


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
