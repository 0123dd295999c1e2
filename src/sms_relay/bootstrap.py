"""Builds the configured record store."""

from __future__ import annotations

from .config import Settings
from .db import SqlRecordStore
from .errors import ConfigurationError
from .store import InMemoryRecordStore, RecordStore


def make_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "memory":
        return InMemoryRecordStore()
    if settings.store_backend == "airtable":
        if not settings.airtable_api_key or not settings.airtable_base_id:
            raise ConfigurationError("Airtable store needs AIRTABLE_API_KEY and AIRTABLE_BASE_ID")
        from .airtable import AirtableRecordStore

        return AirtableRecordStore.connect(
            settings.airtable_api_key,
            settings.airtable_base_id,
            settings.conversations_table,
            settings.field_map,
        )
    return SqlRecordStore.from_url(settings.database_url)
