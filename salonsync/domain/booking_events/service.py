"""
Booking event reconciliation service

Runs one inbound notification through parse -> resolve -> mutate and reports
one of three outcomes:

- ``done``: the ledger reflects the event (possibly as a deduplicated no-op)
- ``pending``: recoverable; the event is parked in the pending queue
- ``failed``: terminal; nothing an operator can assign would fix it

Callers never see an exception from ``process_event`` or ``assign_pending``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import BOOKING_EVENTS_SOURCE
from ...models import Booking
from .events import NewBookingEvent, ParsedEvent, RescheduleEvent, event_from_dict
from .mutator import BookingEventError, BookingMutator
from .parser import parse_event
from .pending_queue import PendingEventQueue
from .repository import BookingRepository
from .resolver import EntityResolver

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    status: str  # done, pending, failed
    booking: Optional[Booking] = None
    action: Optional[str] = None  # created, updated, cancelled
    deduplicated: bool = False
    error: Optional[str] = None
    failure_reason: Optional[str] = None
    pending_event_id: Optional[int] = None

    @property
    def success(self) -> bool:
        # Pending is a soft failure: automated retries must not alarm anyone
        return self.status != "failed"

    @property
    def pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "status": self.status,
            "pending": self.pending,
            "deduplicated": self.deduplicated,
        }
        if self.action:
            data["action"] = self.action
        if self.booking is not None:
            data["bookingId"] = self.booking.id
        if self.error:
            data["error"] = self.error
        if self.failure_reason:
            data["reason"] = self.failure_reason
        if self.pending_event_id is not None:
            data["pendingEventId"] = self.pending_event_id
        return data


class ReconciliationService:
    """Applies booking-platform notifications to one salon's booking ledger"""

    def __init__(self, db: Session, salon_id: int, source: str = BOOKING_EVENTS_SOURCE):
        self.db = db
        self.salon_id = salon_id
        self.source = source
        self.resolver = EntityResolver(db, salon_id)
        self.mutator = BookingMutator(db, salon_id, source)
        self.pending_queue = PendingEventQueue(db, salon_id)
        self.bookings = BookingRepository()

    def process_event(
        self,
        subject: str,
        body: str,
        idempotency_marker: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> ProcessResult:
        """
        Reconcile one notification.

        ``idempotency_marker`` defaults to ``message_id``; a booking already
        carrying the marker short-circuits the pipeline before parsing.
        """
        marker = idempotency_marker or message_id

        try:
            if marker:
                existing = self.bookings.find_by_marker(self.db, self.salon_id, self.source, marker)
                if existing:
                    logger.info(f"♻️ Booking event {marker} already applied as booking {existing.id}")
                    return self._done(ProcessResult("done", booking=existing, deduplicated=True), message_id)

            parsed = parse_event(subject, body)
            if parsed is None:
                return self._soft_fail(
                    message_id, subject, body, None, "parse_failed", "Failed to parse booking notification"
                )

            if isinstance(parsed, NewBookingEvent):
                result = self._apply_new(parsed, subject, body, marker, message_id)
            elif isinstance(parsed, RescheduleEvent):
                booking = self.mutator.reschedule(parsed, marker)
                result = ProcessResult("done", booking=booking, action="updated")
            else:
                booking = self.mutator.cancel(parsed, marker)
                result = ProcessResult("done", booking=booking, action="cancelled")

            return self._done(result, message_id)

        except BookingEventError as e:
            logger.warning(f"⚠️ {e}")
            return ProcessResult("failed", error=str(e), failure_reason=e.reason)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Database error while processing booking event {message_id}: {str(e)}")
            logger.exception("Full booking event error traceback:")
            return self._soft_fail(message_id, subject, body, None, "other", f"Database error: {e}")

    def assign_pending(
        self, pending_id: int, staff_id: Optional[int] = None, service_id: Optional[int] = None
    ) -> ProcessResult:
        """
        Retry a parked new-booking event with operator-chosen staff and/or service.

        The entity not overridden is resolved from the stored parsed data as
        usual. On success the pending record is marked resolved.
        """
        record = self.pending_queue.get(pending_id)
        if record is None:
            return ProcessResult("failed", error="Pending event not found", failure_reason="not_found")
        if record.status != "pending":
            return ProcessResult(
                "failed",
                error="Event is already processed (not in pending status)",
                failure_reason="invalid_state",
                pending_event_id=record.id,
            )
        if not record.parsed_data:
            return ProcessResult(
                "failed",
                error="Cannot retry: parsed data is missing from the pending record",
                failure_reason="parse_failed",
                pending_event_id=record.id,
            )

        try:
            event = event_from_dict(record.parsed_data)
        except ValueError as e:
            logger.error(f"❌ Stored parsed data for pending event {record.id} is invalid: {e}")
            return ProcessResult(
                "failed",
                error="Cannot retry: stored parsed data is invalid",
                failure_reason="parse_failed",
                pending_event_id=record.id,
            )

        if not isinstance(event, NewBookingEvent):
            return ProcessResult(
                "failed",
                error="Only new bookings can be assigned manually",
                failure_reason="invalid_state",
                pending_event_id=record.id,
            )

        try:
            if staff_id is not None:
                staff = self.resolver.staff_by_id(staff_id)
                if staff is None:
                    return ProcessResult(
                        "failed",
                        error=f'Employee with id "{staff_id}" not found in this salon',
                        failure_reason="employee_not_found",
                        pending_event_id=record.id,
                    )
            else:
                staff = self.resolver.resolve_staff(event.staff_name)

            if service_id is not None:
                service = self.resolver.service_by_id(service_id)
                if service is None:
                    return ProcessResult(
                        "failed",
                        error=f'Service with id "{service_id}" not found in this salon',
                        failure_reason="service_not_found",
                        pending_event_id=record.id,
                    )
            else:
                service = self.resolver.resolve_service(event.service_name)

            missing = self._missing_entities(event, staff, service)
            if missing:
                reason, detail = missing
                return ProcessResult("failed", error=detail, failure_reason=reason, pending_event_id=record.id)

            client, _ = self.resolver.resolve_client(event.client_phone, event.subject_name, event.client_email)
            booking, created = self.mutator.create(
                client, staff, service, event.slot, event.price, marker=record.message_id
            )
            self.pending_queue.mark(record.id, "resolved")

        except BookingEventError as e:
            logger.warning(f"⚠️ Pending event {record.id} could not be assigned: {e}")
            return ProcessResult("failed", error=str(e), failure_reason=e.reason, pending_event_id=record.id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Database error while assigning pending event {pending_id}: {str(e)}")
            logger.exception("Full assignment error traceback:")
            return ProcessResult(
                "failed", error=f"Database error: {e}", failure_reason="other", pending_event_id=pending_id
            )

        logger.info(f"✅ Pending event {record.id} resolved as booking {booking.id}")
        return ProcessResult(
            "done",
            booking=booking,
            action="created",
            deduplicated=not created,
            pending_event_id=record.id,
        )

    def booking_stats(self) -> dict[str, int]:
        """Total, scheduled and cancelled bookings carrying this source"""
        counts = self.bookings.count_by_status(self.db, self.salon_id, self.source)
        return {
            "total": sum(counts.values()),
            "scheduled": counts.get("scheduled", 0),
            "cancelled": counts.get("cancelled", 0),
        }

    def recent_bookings(self, limit: int = 20) -> list[Booking]:
        return self.bookings.list_recent(self.db, self.salon_id, self.source, limit)

    def _apply_new(
        self,
        event: NewBookingEvent,
        subject: str,
        body: str,
        marker: Optional[str],
        message_id: Optional[str],
    ) -> ProcessResult:
        # Staff and service are pure reads; the client is only created once they resolved
        staff = self.resolver.resolve_staff(event.staff_name)
        service = self.resolver.resolve_service(event.service_name)

        missing = self._missing_entities(event, staff, service)
        if missing:
            reason, detail = missing
            return self._soft_fail(message_id, subject, body, event, reason, detail)

        client, _ = self.resolver.resolve_client(event.client_phone, event.subject_name, event.client_email)
        booking, created = self.mutator.create(client, staff, service, event.slot, event.price, marker)
        return ProcessResult("done", booking=booking, action="created", deduplicated=not created)

    @staticmethod
    def _missing_entities(event: NewBookingEvent, staff, service) -> Optional[tuple[str, str]]:
        """(reason, detail) naming every unresolved entity, or None"""
        problems = []
        if service is None:
            problems.append(("service_not_found", f"Service not found: {event.service_name or '(none)'}"))
        if staff is None:
            problems.append(("employee_not_found", f"Employee not found: {event.staff_name or '(none)'}"))
        if not problems:
            return None
        return problems[0][0], "; ".join(detail for _, detail in problems)

    def _soft_fail(
        self,
        message_id: Optional[str],
        subject: str,
        body: str,
        parsed: Optional[ParsedEvent],
        reason: str,
        detail: str,
    ) -> ProcessResult:
        """Park the event when it can be identified later, otherwise fail it"""
        if not message_id:
            logger.warning(f"⚠️ Booking event failed without message id: {detail}")
            return ProcessResult("failed", error=detail, failure_reason=reason)

        try:
            record = self.pending_queue.enqueue(message_id, subject, body, parsed, reason, detail)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Could not queue booking event {message_id}: {str(e)}")
            return ProcessResult("failed", error=detail, failure_reason=reason)

        return ProcessResult("pending", error=detail, failure_reason=reason, pending_event_id=record.id)

    def _done(self, result: ProcessResult, message_id: Optional[str]) -> ProcessResult:
        if not message_id:
            return result

        # The ledger write is already committed; a stale pending record must not undo that
        try:
            self.pending_queue.resolve(message_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Could not resolve pending record for {message_id}: {str(e)}")
        return result
