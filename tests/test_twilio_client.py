from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import pytest
import requests
from twilio.base.exceptions import TwilioRestException

from sms_relay.config import Settings
from sms_relay.errors import ConfigurationError, UpstreamError
from sms_relay.twilio_client import TwilioCarrier, get_twilio_client


class FakeMessages:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.kwargs: dict[str, Any] | None = None

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            sid="SM123",
            status="queued",
            to=kwargs["to"],
            from_=kwargs["from_"],
            body=kwargs["body"],
            date_created=datetime(2024, 5, 1, tzinfo=UTC),
            error_code=None,
            error_message=None,
        )


def carrier_with(messages: FakeMessages, settings: Settings) -> TwilioCarrier:
    client = SimpleNamespace(messages=messages)
    return TwilioCarrier(settings, client=client)  # type: ignore[arg-type]


def test_send_returns_provider_response(settings: Settings) -> None:
    messages = FakeMessages()
    response = carrier_with(messages, settings).send("+15551234567", "+15559998888", "hi")
    assert messages.kwargs == {"to": "+15551234567", "from_": "+15559998888", "body": "hi"}
    assert response["sid"] == "SM123"
    assert response["from"] == "+15559998888"
    assert response["date_created"] == "2024-05-01T00:00:00+00:00"


def test_carrier_rejection_keeps_carrier_message(settings: Settings) -> None:
    error = TwilioRestException(
        400,
        "/2010-04-01/Accounts/AC123/Messages.json",
        msg="The 'To' number is not a valid phone number.",
    )
    with pytest.raises(UpstreamError) as excinfo:
        carrier_with(FakeMessages(error), settings).send("+1", "+15559998888", "hi")
    assert excinfo.value.detail == "The 'To' number is not a valid phone number."
    assert excinfo.value.carrier_status == 400


def test_sdk_lead_in_is_dropped_from_carrier_message(settings: Settings) -> None:
    error = TwilioRestException(
        400,
        "/2010-04-01/Accounts/AC123/Messages.json",
        msg="Unable to create record: The To number is not valid",
    )
    with pytest.raises(UpstreamError) as excinfo:
        carrier_with(FakeMessages(error), settings).send("+1", "+15559998888", "hi")
    assert excinfo.value.detail == "The To number is not valid"


def test_timeout_is_an_upstream_error(settings: Settings) -> None:
    error = requests.ReadTimeout("read timed out")
    with pytest.raises(UpstreamError, match="timed out"):
        carrier_with(FakeMessages(error), settings).send("+15551234567", "+15559998888", "hi")


def test_missing_credentials_is_configuration_error() -> None:
    settings = Settings(carrier_account_sid=None, carrier_auth_token=None)
    with pytest.raises(ConfigurationError):
        get_twilio_client(settings)
    with pytest.raises(ConfigurationError):
        TwilioCarrier(settings).check_configured()


def test_client_points_at_configured_host(settings: Settings) -> None:
    settings = settings.model_copy(update={"carrier_base_url": "https://api.textgrid.com/"})
    client = get_twilio_client(settings)
    assert client.api.base_url == "https://api.textgrid.com"
