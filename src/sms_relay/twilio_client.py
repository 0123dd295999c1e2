from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .config import Settings
from .errors import ConfigurationError, UpstreamError
from .phone import mask

logger = logging.getLogger(__name__)

# the SDK prefixes the carrier's message with "Unable to create record: " and similar
SDK_PREFIX = "Unable to "


class Carrier(Protocol):
    def check_configured(self) -> None:
        """Raise ConfigurationError if a send could not even be attempted."""
        ...

    def send(self, to: str, from_: str, body: str) -> dict[str, Any]:
        """Send one SMS; `to` and `from_` are already "+digits". Raises UpstreamError."""
        ...


def get_twilio_client(settings: Settings) -> Client:
    """
    Twilio SDK client pointed at the configured carrier host.

    TextGrid serves the same /2010-04-01/Accounts/{sid}/Messages.json API,
    so only the base URL changes.
    """
    if not settings.carrier_account_sid or not settings.carrier_auth_token:
        raise ConfigurationError(
            "Carrier credentials are not configured (CARRIER_ACCOUNT_SID / CARRIER_AUTH_TOKEN)"
        )

    client = Client(
        settings.carrier_account_sid,
        settings.carrier_auth_token,
        http_client=TwilioHttpClient(timeout=settings.carrier_timeout_seconds),
    )
    if settings.carrier_base_url:
        client.api.base_url = settings.carrier_base_url.rstrip("/")
    return client


def carrier_detail(exc: TwilioRestException) -> str:
    """The carrier's own error text, without the SDK's lead-in."""
    message = str(exc.msg)
    if message.startswith(SDK_PREFIX) and ": " in message:
        return message.split(": ", 1)[1]
    return message


class TwilioCarrier:
    """
    Single-attempt sender. No retries; the timeout comes from settings.

    The SDK client is built on first use so a relay without credentials can
    still start and report a ConfigurationError per send.
    """

    def __init__(self, settings: Settings, client: Client | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_twilio_client(self.settings)
        return self._client

    def check_configured(self) -> None:
        _ = self.client

    def send(self, to: str, from_: str, body: str) -> dict[str, Any]:
        client = self.client
        try:
            message = client.messages.create(to=to, from_=from_, body=body)
        except TwilioRestException as exc:
            detail = carrier_detail(exc)
            logger.warning("Carrier rejected send to %s: %s %s", mask(to), exc.status, detail)
            raise UpstreamError(detail, carrier_status=exc.status) from exc
        except requests.Timeout as exc:
            logger.warning("Carrier timed out sending to %s", mask(to))
            raise UpstreamError(f"Carrier timed out: {exc}") from exc
        except (requests.RequestException, TwilioException) as exc:
            logger.warning("Carrier call to %s failed: %s", mask(to), exc)
            raise UpstreamError(str(exc)) from exc

        return {
            "sid": message.sid,
            "status": message.status,
            "to": message.to,
            "from": message.from_,
            "body": message.body,
            "date_created": message.date_created.isoformat() if message.date_created else None,
            "error_code": message.error_code,
            "error_message": message.error_message,
        }
