from __future__ import annotations

from collections.abc import Iterator

import logging

import pytest
from fakes import FailingStore, FakeCarrier
from fastapi.testclient import TestClient

from sms_relay.config import Settings
from sms_relay.errors import UpstreamError
from sms_relay.main import create_app
from sms_relay.store import InMemoryRecordStore


@pytest.fixture
def client(
    settings: Settings, store: InMemoryRecordStore, carrier: FakeCarrier
) -> Iterator[TestClient]:
    app = create_app(settings=settings, store=store, carrier=carrier)
    yield TestClient(app)
    app.state.relay.close()


def test_health(client: TestClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert "running" in resp.text


def test_send_endpoint(
    client: TestClient, carrier: FakeCarrier, store: InMemoryRecordStore
) -> None:
    resp = client.post(
        "/sms-proxy",
        json={"to": "5551234567", "from": "5559998888", "body": "Hi", "prospect_id": "rec9"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["providerResponse"]["sid"] == "SM0001"
    assert data["recordId"] == store.query()[0].id
    assert carrier.calls == [{"to": "+5551234567", "from": "+5559998888", "body": "Hi"}]


def test_send_endpoint_uses_owned_number_when_from_missing(
    client: TestClient, carrier: FakeCarrier
) -> None:
    resp = client.post("/sms-proxy", json={"to": "5551234567", "body": "Hi"})
    assert resp.status_code == 200
    assert carrier.calls[0]["from"] == "+15559998888"


@pytest.mark.parametrize(
    "body",
    [{"body": "Hi"}, {"to": "5551234567"}, {"to": "5551234567", "body": "   "}, {}],
)
def test_send_endpoint_validation(
    client: TestClient, carrier: FakeCarrier, body: dict[str, str]
) -> None:
    resp = client.post("/sms-proxy", json=body)
    assert resp.status_code == 400
    assert "error" in resp.json()
    assert carrier.calls == []



def test_send_endpoint_rejects_wrong_field_type(
    client: TestClient, carrier: FakeCarrier
) -> None:
    resp = client.post("/sms-proxy", json={"to": ["5551234567"], "body": "hi"})
    assert resp.status_code == 400
    assert "to" in resp.json()["error"]
    assert carrier.calls == []


def test_send_endpoint_rejects_invalid_json(
    client: TestClient, carrier: FakeCarrier
) -> None:
    resp = client.post(
        "/sms-proxy", content=b"not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert set(resp.json()) == {"error"}
    assert carrier.calls == []


def test_send_endpoint_without_owned_numbers(settings: Settings, carrier: FakeCarrier) -> None:
    app = create_app(
        settings=settings.model_copy(update={"owned_numbers": []}),
        store=InMemoryRecordStore(),
        carrier=carrier,
    )
    resp = TestClient(app).post("/sms-proxy", json={"to": "5551234567", "body": "Hi"})
    app.state.relay.close()
    assert resp.status_code == 503
    assert "owned numbers" in resp.json()["error"]


def test_send_endpoint_reports_carrier_error(settings: Settings) -> None:
    store = InMemoryRecordStore()
    carrier = FakeCarrier(error=UpstreamError("Account suspended", carrier_status=403))
    app = create_app(settings=settings, store=store, carrier=carrier)
    resp = TestClient(app).post("/sms-proxy", json={"to": "5551234567", "body": "Hi"})
    app.state.relay.close()
    assert resp.status_code == 502
    assert resp.json() == {"error": "Account suspended"}
    # the optimistic record is still there
    assert len(store) == 1


def test_incoming_form_webhook(client: TestClient, store: InMemoryRecordStore) -> None:
    resp = client.post(
        "/incoming", data={"From": "+15551230000", "To": "+15559998888", "Body": "hi"}
    )
    assert resp.status_code == 200
    assert resp.text == "OK"
    [record] = store.query()
    assert (record.from_number, record.to_number, record.body) == (
        "+15551230000",
        "+15559998888",
        "hi",
    )


def test_incoming_json_webhook(client: TestClient, store: InMemoryRecordStore) -> None:
    resp = client.post(
        "/incoming", json={"From": "+15551230000", "To": "+15559998888", "Body": "hi"}
    )
    assert resp.status_code == 200
    assert len(store) == 1


def test_incoming_missing_fields(client: TestClient, store: InMemoryRecordStore) -> None:
    resp = client.post("/incoming", json={"From": "", "To": "+15559998888", "Body": "hi"})
    assert resp.status_code == 400
    assert "From" in resp.json()["error"]
    assert len(store) == 0


def test_incoming_non_object_json(client: TestClient) -> None:
    resp = client.post("/incoming", json=["From", "To"])
    assert resp.status_code == 400


def test_incoming_store_failure(settings: Settings, carrier: FakeCarrier) -> None:
    app = create_app(settings=settings, store=FailingStore(), carrier=carrier)
    resp = TestClient(app).post(
        "/incoming", data={"From": "+15551230000", "To": "+15559998888", "Body": "hi"}
    )
    app.state.relay.close()
    assert resp.status_code == 500
    assert resp.json() == {"error": "store is down"}


def test_incoming_redelivery_is_stored_once(
    client: TestClient, store: InMemoryRecordStore
) -> None:
    form = {"From": "+15551230000", "To": "+15559998888", "Body": "hi", "MessageSid": "SM77"}
    assert client.post("/incoming", data=form).status_code == 200
    assert client.post("/incoming", data=form).status_code == 200
    assert len(store) == 1


def test_send_then_read_thread_by_eleven_digit_number(client: TestClient) -> None:
    client.post("/sms-proxy", json={"to": "5551234567", "body": "Are you still selling?"})
    client.post(
        "/incoming", data={"From": "+15551234567", "To": "+15559998888", "Body": "Maybe"}
    )

    resp = client.get("/conversations/15551234567")
    assert resp.status_code == 200
    data = resp.json()
    assert data["counterpart"] == "15551234567"
    assert [(m["body"], m["outbound"]) for m in data["messages"]] == [
        ("Are you still selling?", True),
        ("Maybe", False),
    ]


def test_thread_for_blank_phone_is_empty(client: TestClient) -> None:
    client.post("/sms-proxy", json={"to": "5551234567", "body": "hi"})
    resp = client.get("/conversations/none")
    assert resp.json() == {"counterpart": "", "messages": []}


def test_thread_store_failure(settings: Settings, carrier: FakeCarrier) -> None:
    app = create_app(settings=settings, store=FailingStore(), carrier=carrier)
    resp = TestClient(app).get("/conversations/5551234567")
    app.state.relay.close()
    assert resp.status_code == 500


def test_app_keeps_sending_across_restarts(
    settings: Settings, store: InMemoryRecordStore, carrier: FakeCarrier
) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    app = create_app(settings=settings, store=store, carrier=carrier)
    try:
        for attempt in range(2):
            with TestClient(app) as client:
                resp = client.post(
                    "/sms-proxy", json={"to": "5551234567", "body": f"#{attempt}"}
                )
                assert resp.status_code == 200
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
    assert len(carrier.calls) == 2
    assert len(store) == 2
