"""
Human-verification gate (reCAPTCHA-style siteverify).
"""

import logging
from typing import Optional

import requests

from companion.config import Settings

logger = logging.getLogger(__name__)


class VerificationGate:
    """
    Checks a client-side verification token against the verifier endpoint.

    Without a secret key the gate passes every token. This is the
    development default and is logged on every call.
    """

    def __init__(self, secret_key: Optional[str], verify_url: str, timeout: float = 10.0):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerificationGate":
        return cls(
            secret_key=settings.RECAPTCHA_SECRET_KEY,
            verify_url=settings.RECAPTCHA_VERIFY_URL,
            timeout=settings.VERIFICATION_TIMEOUT_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        if not self.enabled:
            logger.warning("RECAPTCHA_SECRET_KEY not set, skipping verification")
            return True

        payload = {"secret": self.secret_key, "response": token}
        if remote_ip and remote_ip != "unknown":
            payload["remoteip"] = remote_ip

        try:
            response = requests.post(self.verify_url, data=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Verification request failed: {e}")
            return False

        success = result.get("success") is True
        if not success:
            logger.info("Verification token rejected", extra={"error_codes": result.get("error-codes", [])})
        return success
