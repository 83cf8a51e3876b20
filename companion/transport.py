"""
Outbound SMS transport.

TwilioTransport sends through the Twilio REST API. StubTransport is used
when credentials are missing: it logs the message and reports a fixed
provider id so the pipeline runs end-to-end without a live account.
"""

import logging
from typing import Protocol

import requests
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from companion.config import Settings
from companion.errors import TransportError

logger = logging.getLogger(__name__)

STUB_MESSAGE_ID = "stub-message-id"


class Transport(Protocol):
    def send(self, to: str, body: str) -> str:
        """Send `body` to `to` and return the provider message id."""
        ...


class TwilioTransport:
    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.client = Client(account_sid, auth_token)
        self.from_number = from_number

    def send(self, to: str, body: str) -> str:
        try:
            message = self.client.messages.create(body=body, from_=self.from_number, to=to)
        except (TwilioException, requests.RequestException) as e:
            raise TransportError(str(e)) from e
        logger.info(f"Message sent via Twilio: {message.sid}")
        return message.sid


class StubTransport:
    def send(self, to: str, body: str) -> str:
        logger.info(
            "[STUB] Message would be sent",
            extra={"to": to, "content_preview": body[:100]},
        )
        return STUB_MESSAGE_ID


def build_transport(settings: Settings) -> Transport:
    if settings.transport_configured:
        logger.info("Twilio transport configured")
        return TwilioTransport(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER,
        )
    logger.warning(
        "Twilio credentials not configured, messages will be stubbed. "
        "Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER"
    )
    return StubTransport()
