from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class Direction(str, Enum):
    OUTBOUND = "OUTBOUND"
    INBOUND = "INBOUND"


class DeliveryStatus(str, Enum):
    QUEUED = "Queued"
    RECEIVED = "Received"


@dataclass(frozen=True)
class MessageRecord:
    """
    One SMS event as stored.

    `timestamp` is whatever the store holds: a datetime for records this
    package wrote, possibly a string or nothing for rows written elsewhere.
    `direction` may be None on such rows too.
    """

    counterpart: str
    from_number: str
    to_number: str
    body: str
    direction: Direction | None = None
    timestamp: datetime | str | float | None = None
    status: str | None = None
    carrier_message_id: str | None = None
    id: str | None = None


@dataclass(frozen=True)
class MessageQuery:
    """
    Store-side narrowing. `counterparts` holds digit-only variants;
    None means every record.
    """

    counterparts: frozenset[str] | None = None
    limit: int | None = None


@dataclass(frozen=True)
class SendRequest:
    to: str | None
    body: str | None
    from_number: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SendResult:
    provider_response: dict[str, Any]
    to: str
    from_number: str
    record_id: str | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class IngestResult:
    record_id: str
    record: MessageRecord


class InboundPayload(BaseModel):
    """Carrier webhook fields. The carrier's own field names are the aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    from_number: str | None = Field(default=None, alias="From")
    to_number: str | None = Field(default=None, alias="To")
    body: str | None = Field(default=None, alias="Body")
    message_sid: str | None = Field(default=None, alias="MessageSid")
    sms_sid: str | None = Field(default=None, alias="SmsSid")

    @property
    def carrier_message_id(self) -> str | None:
        return self.message_sid or self.sms_sid or None


class SendPayload(BaseModel):
    """JSON body of the send endpoint. Presence checks happen in the relay."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    to: str | None = None
    from_number: str | None = Field(default=None, alias="from")
    body: str | None = None
    context: dict[str, Any] | None = None
    prospect_id: str | None = None
    prospect_name: str | None = None

    def to_request(self) -> SendRequest:
        context: dict[str, Any] = dict(self.context or {})
        if self.prospect_id is not None:
            context.setdefault("prospect_id", self.prospect_id)
        if self.prospect_name is not None:
            context.setdefault("prospect_name", self.prospect_name)
        return SendRequest(
            to=self.to,
            body=self.body,
            from_number=self.from_number,
            context=context,
        )
