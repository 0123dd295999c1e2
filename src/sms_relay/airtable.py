"""Conversation records kept in an Airtable base."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import requests
from pyairtable import Api, Table

from .config import FieldMap
from .conversation import parse_direction
from .errors import StoreError
from .models import Direction, MessageQuery, MessageRecord
from .phone import normalize

logger = logging.getLogger(__name__)


class AirtableRecordStore:
    """
    Reads and writes the Conversations table through pyairtable.

    Field names come from `FieldMap`. Phone fields are stored as written
    (the table may hold formatted numbers), so counterpart filtering is done
    here after fetching rather than with a formula. Inserts are blind:
    redelivered webhooks produce duplicate rows.
    """

    def __init__(self, table: Table, fields: FieldMap | None = None) -> None:
        self.table = table
        self.fields = fields or FieldMap()

    @classmethod
    def connect(
        cls, api_key: str, base_id: str, table_name: str, fields: FieldMap | None = None
    ) -> AirtableRecordStore:
        return cls(Api(api_key).table(base_id, table_name), fields)

    def _direction_token(self, direction: Direction | None) -> str | None:
        if direction is Direction.OUTBOUND:
            return self.fields.outbound_token
        if direction is Direction.INBOUND:
            return self.fields.inbound_token
        return None

    def to_fields(self, record: MessageRecord) -> dict[str, Any]:
        f = self.fields
        out: dict[str, Any] = {
            f.counterpart: record.counterpart,
            f.from_number: record.from_number,
            f.to_number: record.to_number,
            f.body: record.body,
        }
        token = self._direction_token(record.direction)
        if token is not None:
            out[f.direction] = token
        if isinstance(record.timestamp, datetime):
            out[f.timestamp] = record.timestamp.isoformat()
        elif record.timestamp is not None:
            out[f.timestamp] = record.timestamp
        if record.status:
            out[f.status] = record.status
        if record.carrier_message_id:
            out[f.carrier_message_id] = record.carrier_message_id
        return out

    def from_airtable(self, raw: dict[str, Any]) -> MessageRecord:
        f = self.fields
        values: dict[str, Any] = raw.get("fields", {})
        # older rows were written with capitalised or created_at columns
        direction = values.get(f.direction) or values.get(f.direction.capitalize())
        timestamp = values.get(f.timestamp) or values.get("created_at") or raw.get("createdTime")
        return MessageRecord(
            id=raw.get("id"),
            counterpart=str(values.get(f.counterpart) or ""),
            from_number=str(values.get(f.from_number) or ""),
            to_number=str(values.get(f.to_number) or ""),
            body=str(values.get(f.body) or ""),
            direction=parse_direction(direction),
            timestamp=timestamp,
            status=values.get(f.status),
            carrier_message_id=values.get(f.carrier_message_id),
        )

    def create(self, record: MessageRecord) -> str:
        try:
            created = self.table.create(self.to_fields(record))
        except requests.RequestException as exc:
            raise StoreError(f"Airtable create failed: {exc}") from exc
        return str(created["id"])

    def query(self, query: MessageQuery | None = None) -> list[MessageRecord]:
        try:
            rows = self.table.all()
        except requests.RequestException as exc:
            raise StoreError(f"Airtable read failed: {exc}") from exc

        records = [self.from_airtable(row) for row in rows]
        if query is not None and query.counterparts is not None:
            records = [
                r for r in records if normalize(r.counterpart).digits in query.counterparts
            ]
        if query is not None and query.limit is not None:
            records = records[-query.limit :]
        logger.debug("Fetched %d conversation rows from Airtable", len(records))
        return records
