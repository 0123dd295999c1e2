from __future__ import annotations

import logging
from dataclasses import replace

from .errors import StoreError, ValidationError
from .models import (
    DeliveryStatus,
    Direction,
    InboundPayload,
    IngestResult,
    MessageRecord,
    utcnow,
)
from .phone import mask
from .store import RecordStore

logger = logging.getLogger(__name__)


class InboundIngestor:
    """
    Turn carrier delivery callbacks into INBOUND records.

    The record is the whole point of the webhook, so a store failure is
    raised, not swallowed. Receipt time is used as the timestamp; any time
    the carrier sends is ignored.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def ingest(self, payload: InboundPayload) -> IngestResult:
        """
        Raises:
            ValidationError: From, To or Body missing or empty. Nothing is written.
            StoreError: the record could not be persisted.
        """
        from_number = payload.from_number or ""
        to_number = payload.to_number or ""
        body = payload.body or ""
        missing = [
            name
            for name, value in (("From", from_number), ("To", to_number), ("Body", body))
            if not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing {', '.join(missing)}")

        record = MessageRecord(
            counterpart=from_number,
            from_number=from_number,
            to_number=to_number,
            body=body,
            direction=Direction.INBOUND,
            timestamp=utcnow(),
            status=DeliveryStatus.RECEIVED.value,
            carrier_message_id=payload.carrier_message_id,
        )
        try:
            record_id = self.store.create(record)
        except StoreError:
            logger.exception("Could not store inbound SMS from %s", mask(from_number))
            raise

        logger.info(
            "Stored inbound SMS #%s from %s to %s",
            record_id,
            mask(from_number),
            mask(to_number),
        )
        return IngestResult(record_id=record_id, record=replace(record, id=record_id))
