from __future__ import annotations

from collections.abc import Iterator

import pytest
from fakes import OWNED, FakeCarrier

from sms_relay.config import Settings
from sms_relay.relay import OutboundRelay
from sms_relay.store import InMemoryRecordStore


@pytest.fixture
def settings() -> Settings:
    return Settings(
        owned_numbers=[OWNED],
        store_backend="memory",
        carrier_account_sid="AC123",
        carrier_auth_token="secret",
        audit_write_timeout_seconds=2.0,
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def carrier() -> FakeCarrier:
    return FakeCarrier()


@pytest.fixture
def relay(store: InMemoryRecordStore, carrier: FakeCarrier) -> Iterator[OutboundRelay]:
    relay = OutboundRelay(store=store, carrier=carrier, owned_numbers=[OWNED])
    yield relay
    relay.close()
