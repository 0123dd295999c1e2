from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


class FieldMap(BaseModel):
    """Column / field names of the conversation entity in the configured store."""

    counterpart: str = "phone"
    from_number: str = "from_number"
    to_number: str = "to_number"
    body: str = "message"
    direction: str = "direction"
    timestamp: str = "sent_at"
    status: str = "Delivery Status"
    carrier_message_id: str = "carrier_message_id"

    # Tokens written to the direction field. Reading is more lenient, see conversation.py.
    outbound_token: str = "OUT"
    inbound_token: str = "IN"


class Settings(BaseModel):
    model_config = ConfigDict(validate_default=True)

    # --- Carrier (TextGrid speaks the Twilio REST dialect) ---
    carrier_account_sid: str | None = Field(default_factory=lambda: _env("CARRIER_ACCOUNT_SID"))
    carrier_auth_token: str | None = Field(default_factory=lambda: _env("CARRIER_AUTH_TOKEN"))
    carrier_base_url: str = Field(
        default_factory=lambda: _env("CARRIER_BASE_URL", "https://api.textgrid.com") or ""
    )
    carrier_timeout_seconds: float = Field(
        default_factory=lambda: float(_env("CARRIER_TIMEOUT_SECONDS", "10") or 10)
    )

    # Owned source numbers, in the order they should be picked as default sender
    owned_numbers: list[str] = Field(default_factory=lambda: _env_list("OWNED_NUMBERS"))

    # --- Record store ---
    store_backend: Literal["sql", "airtable", "memory"] = Field(
        default_factory=lambda: _env("STORE_BACKEND", "sql")  # type: ignore[return-value]
    )
    # - Default for local dev: sqlite file in the project root (sms_relay.db)
    # - Override in Docker / production using the DATABASE_URL env var
    database_url: str = Field(
        default_factory=lambda: _env("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'sms_relay.db'}")
        or ""
    )
    airtable_api_key: str | None = Field(default_factory=lambda: _env("AIRTABLE_API_KEY"))
    airtable_base_id: str | None = Field(default_factory=lambda: _env("AIRTABLE_BASE_ID"))
    conversations_table: str = Field(
        default_factory=lambda: _env("CONVERSATIONS_TABLE", "Conversations") or "Conversations"
    )
    field_map: FieldMap = Field(default_factory=FieldMap)

    # How long a send waits for its audit write once the carrier has answered
    audit_write_timeout_seconds: float = Field(
        default_factory=lambda: float(_env("AUDIT_WRITE_TIMEOUT_SECONDS", "2") or 2)
    )

    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO") or "INFO")


@lru_cache
def get_settings() -> Settings:
    return Settings()
