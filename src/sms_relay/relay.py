"""
Outbound relay: audit record + carrier send.

The two side effects are independent. The audit write runs on a worker
thread and the carrier call runs on the caller's thread, so a slow store
never delays the send. A failed audit write is logged and otherwise
ignored; a failed send is raised to the caller whatever happened to the
audit write.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from .errors import ConfigurationError, UpstreamError, ValidationError
from .models import DeliveryStatus, Direction, MessageRecord, SendRequest, SendResult, utcnow
from .phone import PhoneIdentity, mask, normalize
from .store import RecordStore
from .twilio_client import Carrier

logger = logging.getLogger(__name__)


class OutboundRelay:
    def __init__(
        self,
        store: RecordStore,
        carrier: Carrier,
        owned_numbers: Sequence[str] = (),
        audit_write_timeout: float = 2.0,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.carrier = carrier
        self.owned_numbers = tuple(owned_numbers)
        self.audit_write_timeout = audit_write_timeout
        self.max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    def _audit_executor(self) -> ThreadPoolExecutor:
        # created on demand so the relay keeps working after close()
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="sms-audit"
                )
            return self._executor

    def close(self, wait: bool = True) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def resolve_source(self, requested: str | None) -> PhoneIdentity:
        """
        The requested sender, or the first usable owned number.

        Raises:
            ConfigurationError: nothing requested and no owned number configured.
        """
        source = normalize(requested)
        if not source.is_empty:
            return source
        for candidate in self.owned_numbers:
            source = normalize(candidate)
            if not source.is_empty:
                return source
        raise ConfigurationError("No 'from' number given and no owned numbers configured")

    def _write_audit(self, record: MessageRecord) -> str:
        return self.store.create(record)

    def _on_audit_done(self, future: Future[str]) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Could not log outbound message: %s", exc)

    def send(self, request: SendRequest) -> SendResult:
        """
        Send one message.

        Raises:
            ValidationError: missing destination or blank body; nothing was written or sent.
            ConfigurationError: no sender could be resolved; nothing was written or sent.
            UpstreamError: the carrier rejected the message or timed out.
        """
        destination = normalize(request.to)
        if destination.is_empty:
            raise ValidationError("Missing 'to' number")
        body = request.body
        if body is None or not body.strip():
            raise ValidationError("Message body is empty")
        source = self.resolve_source(request.from_number)
        self.carrier.check_configured()

        record = MessageRecord(
            counterpart=destination.digits,
            from_number=source.digits,
            to_number=destination.digits,
            body=body,
            direction=Direction.OUTBOUND,
            timestamp=utcnow(),
            status=DeliveryStatus.QUEUED.value,
        )
        audit: Future[str] = self._audit_executor().submit(self._write_audit, record)
        audit.add_done_callback(self._on_audit_done)

        try:
            provider_response = self.carrier.send(destination.e164(), source.e164(), body)
        except UpstreamError as exc:
            exc.record_id = self._audit_id(audit)
            raise
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception("Unexpected carrier failure sending to %s", mask(destination))
            raise UpstreamError(str(exc), record_id=self._audit_id(audit)) from exc

        logger.info(
            "Sent SMS to %s from %s (context keys: %s)",
            mask(destination),
            mask(source),
            sorted(request.context),
        )
        return SendResult(
            provider_response=provider_response,
            to=destination.e164(),
            from_number=source.e164(),
            record_id=self._audit_id(audit),
        )

    def _audit_id(self, audit: Future[str]) -> str | None:
        """Id of the audit record if it lands within the grace period, else None."""
        try:
            return audit.result(timeout=self.audit_write_timeout)
        except FutureTimeoutError:
            logger.info("Audit write still pending after %.1fs", self.audit_write_timeout)
            return None
        except Exception:
            # already logged by _on_audit_done
            return None
