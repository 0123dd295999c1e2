"""
Record store seam.

The relay, the ingestor and the conversation endpoint only need `create`
and `query`; concrete stores live in db.py (SQLAlchemy) and airtable.py.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Protocol, runtime_checkable

from .models import MessageQuery, MessageRecord
from .phone import normalize


@runtime_checkable
class RecordStore(Protocol):
    def create(self, record: MessageRecord) -> str:
        """Persist one record and return its store id. Raises StoreError."""
        ...

    def query(self, query: MessageQuery | None = None) -> list[MessageRecord]:
        """Records matching `query`, in insertion order. Raises StoreError."""
        ...


class InMemoryRecordStore:
    """Process-local store for tests and the `memory` backend."""

    def __init__(self) -> None:
        self._records: list[MessageRecord] = []
        self._by_carrier_id: dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, record: MessageRecord) -> str:
        with self._lock:
            if record.carrier_message_id and record.carrier_message_id in self._by_carrier_id:
                return self._by_carrier_id[record.carrier_message_id]
            record_id = uuid.uuid4().hex
            self._records.append(replace(record, id=record_id))
            if record.carrier_message_id:
                self._by_carrier_id[record.carrier_message_id] = record_id
            return record_id

    def query(self, query: MessageQuery | None = None) -> list[MessageRecord]:
        with self._lock:
            records = list(self._records)
        if query is None:
            return records
        if query.counterparts is not None:
            records = [
                r for r in records if normalize(r.counterpart).digits in query.counterparts
            ]
        if query.limit is not None:
            records = records[-query.limit :]
        return records

    def __len__(self) -> int:
        return len(self._records)
