"""Failure kinds surfaced by the relay, the ingestor and the stores."""

from __future__ import annotations


class RelayError(Exception):
    """Base for every failure this package reports to a caller."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(RelayError):
    """A required field is missing or empty. Never retried."""

    status_code = 400


class ConfigurationError(RelayError):
    """Operator-side problem, e.g. no source number or no carrier credentials."""

    status_code = 503


class UpstreamError(RelayError):
    """The carrier rejected the request or did not answer in time."""

    status_code = 502

    def __init__(
        self,
        detail: str,
        carrier_status: int | None = None,
        record_id: str | None = None,
    ) -> None:
        super().__init__(detail)
        self.carrier_status = carrier_status
        # id of the audit record, if it was written before the send failed
        self.record_id = record_id


class StoreError(RelayError):
    """A durable read or write failed."""

    status_code = 500
