"""
Rebuild a single counterpart's thread from the full set of stored messages.

Nothing here touches a store or raises on bad data: malformed phones
never match, malformed timestamps sort first, unknown directions render
as inbound.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from .models import Direction, MessageRecord
from .phone import normalize

OUTBOUND_TOKENS = frozenset({"OUT", "OUTBOUND"})
INBOUND_TOKENS = frozenset({"IN", "INBOUND"})


def timestamp_key(value: object) -> float:
    """
    Epoch seconds used for ordering.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    numeric epoch seconds. Anything else counts as the epoch itself.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.timestamp()
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return timestamp_key(datetime.fromisoformat(text))
        except ValueError:
            return 0.0
    return 0.0


def reconcile(
    counterpart_raw: object, all_messages: Iterable[MessageRecord]
) -> list[MessageRecord]:
    """
    Messages exchanged with `counterpart_raw`, oldest first.

    Matching goes through the 10/11-digit variants, so "5551234567" and
    "+1 (555) 123-4567" are the same thread. Records with equal timestamps
    keep their input order. Duplicates are kept.
    """
    target = normalize(counterpart_raw)
    if target.is_empty:
        return []

    wanted = target.variants()
    matching = [
        record for record in all_messages if normalize(record.counterpart).digits in wanted
    ]
    # list.sort is stable
    matching.sort(key=lambda record: timestamp_key(record.timestamp))
    return matching


def parse_direction(token: object) -> Direction | None:
    """Explicit direction from a stored token, or None when the field is unset."""
    if isinstance(token, Direction):
        return token
    if token is None:
        return None
    text = str(token).strip().upper()
    if not text:
        return None
    if text in OUTBOUND_TOKENS:
        return Direction.OUTBOUND
    # Any other explicit value renders like an inbound message
    return Direction.INBOUND


def infer_direction(
    record: MessageRecord, owned_numbers: Collection[str] | None = None
) -> Direction:
    """
    Display direction of a record.

    An explicit direction always wins. Without one, the record is outbound
    only if its destination number is one of ours; with no owned numbers
    known everything renders as inbound.
    """
    explicit = parse_direction(record.direction)
    if explicit is not None:
        return explicit
    if not owned_numbers:
        return Direction.INBOUND

    owned: set[str] = set()
    for number in owned_numbers:
        owned |= normalize(number).variants()
    destination = normalize(record.to_number)
    if not destination.is_empty and destination.digits in owned:
        return Direction.OUTBOUND
    return Direction.INBOUND


@dataclass(frozen=True)
class ConversationEntry:
    record: MessageRecord
    direction: Direction

    @property
    def outbound(self) -> bool:
        return self.direction is Direction.OUTBOUND


@dataclass(frozen=True)
class ConversationView:
    """Read-only thread for one counterpart. Recomputed on every request."""

    counterpart: str
    entries: tuple[ConversationEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def records(self) -> list[MessageRecord]:
        return [entry.record for entry in self.entries]


def build_view(
    counterpart_raw: object,
    all_messages: Iterable[MessageRecord],
    owned_numbers: Collection[str] | None = None,
) -> ConversationView:
    records: Sequence[MessageRecord] = reconcile(counterpart_raw, all_messages)
    entries = tuple(
        ConversationEntry(record=record, direction=infer_direction(record, owned_numbers))
        for record in records
    )
    return ConversationView(counterpart=normalize(counterpart_raw).digits, entries=entries)
