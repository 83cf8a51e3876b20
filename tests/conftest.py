"""
Pytest configuration and shared fixtures.

Test env vars are set here before any package import so the cached
settings see a throwaway SQLite database and no live credentials.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="companion-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'app.db')}"
os.environ["LOG_LEVEL"] = "WARNING"
for _name in (
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "RECAPTCHA_SECRET_KEY",
    "SMTP_HOST",
):
    os.environ.pop(_name, None)

# Clear settings cache before any app imports to ensure test env vars are used
from companion.config import get_settings  # noqa: E402
get_settings.cache_clear()

from companion.consent import record_consent  # noqa: E402
from companion.models import Base, RequestStatus  # noqa: E402
from companion.schemas import MarkQueued  # noqa: E402
from companion.storage import Store  # noqa: E402


def submission_payload(**overrides) -> dict:
    """A fully valid submission body."""
    payload = {
        "requester_name": "Alex Smith",
        "elder_name": "Margaret",
        "elder_phone": "+14155550100",
        "message_type": "birthday",
        "elder_age": 84,
        "elder_personality": "Cheerful, enjoys gardening and crosswords",
        "requester_contact": "alex@example.com",
        "consent_elder_confirmed": True,
        "consent_no_impersonation": True,
        "verification_token": "test-token",
    }
    payload.update(overrides)
    return payload


class FakeGate:
    """Verification gate stand-in that records the tokens it saw."""

    def __init__(self, passes: bool = True):
        self.passes = passes
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return self.passes


@pytest.fixture(scope="function")
def store(tmp_path):
    """Fresh record store for each test."""
    test_store = Store(f"sqlite:///{tmp_path / 'test.db'}")
    test_store.init_db()
    yield test_store
    Base.metadata.drop_all(bind=test_store.engine)
    test_store.dispose()


@pytest.fixture
def make_queued_request(store):
    """
    Create a queued request the way intake does: request row, two consent
    rows, then queued. Keyword overrides go to the request row; consent
    row values can be set with recipient_log / impersonation_log.
    """
    counter = {"n": 0}
    base_time = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def _make(recipient_log=True, impersonation_log=True, write_consent=True, **overrides):
        fields = submission_payload()
        fields.update(overrides)
        fields.setdefault("created_at", base_time + timedelta(minutes=counter["n"]))
        counter["n"] += 1

        request = store.create_request(fields, status=RequestStatus.PENDING)
        if write_consent:
            record_consent(
                store,
                request.id,
                recipient_consent=recipient_log,
                no_impersonation=impersonation_log,
                origin_address="203.0.113.7",
                client_signature="pytest",
            )
        return store.update_request_status(request.id, MarkQueued())

    return _make
