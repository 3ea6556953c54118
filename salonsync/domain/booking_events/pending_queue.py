"""Pending-event queue - notifications waiting for manual resolution"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...config import PENDING_BODY_SNIPPET_CHARS, PENDING_LIST_LIMIT
from ...models import PendingBookingEvent
from .events import ParsedEvent, event_to_dict
from .repository import PendingEventRepository

logger = logging.getLogger(__name__)

FAILURE_REASONS = ("parse_failed", "service_not_found", "employee_not_found", "other")
STATUSES = ("pending", "resolved", "ignored")


class PendingTransitionError(ValueError):
    """Requested status change is not allowed for the record"""

    pass


class PendingEventQueue:
    """Upsert-by-message-id queue scoped to one salon"""

    def __init__(self, db: Session, salon_id: int):
        self.db = db
        self.salon_id = salon_id
        self.repo = PendingEventRepository()

    def enqueue(
        self,
        message_id: str,
        subject: str,
        body: str,
        parsed: Optional[ParsedEvent],
        reason: str,
        detail: Optional[str] = None,
    ) -> PendingBookingEvent:
        """
        Record a failed delivery. A redelivery of the same message id refreshes
        the existing record and puts it back to ``pending`` instead of adding a
        second one.
        """
        if reason not in FAILURE_REASONS:
            reason = "other"

        record = self.repo.get_by_message_id(self.db, self.salon_id, message_id)
        if record is None:
            record = PendingBookingEvent(salon_id=self.salon_id, message_id=message_id)

        record.subject = (subject or "")[:1000]
        record.body_snippet = (body or "")[:PENDING_BODY_SNIPPET_CHARS]
        record.parsed_data = event_to_dict(parsed) if parsed is not None else None
        record.failure_reason = reason
        record.failure_detail = detail
        record.status = "pending"
        record.resolved_at = None

        record = self.repo.save(self.db, record)
        logger.warning(
            f"📥 Queued booking event {message_id} for salon {self.salon_id}: {reason} ({detail})"
        )
        return record

    def resolve(self, message_id: str) -> Optional[PendingBookingEvent]:
        """Mark the pending record for ``message_id`` resolved, if there is one"""
        record = self.repo.get_by_message_id(self.db, self.salon_id, message_id)
        if record is None or record.status != "pending":
            return None
        return self._transition(record, "resolved")

    def ignore(self, pending_id: int) -> Optional[PendingBookingEvent]:
        """Operator decision: stop processing this record"""
        record = self.get(pending_id)
        if record is None:
            return None
        return self._transition(record, "ignored")

    def mark(self, pending_id: int, status: str) -> Optional[PendingBookingEvent]:
        """Manual status change to ``resolved`` or ``ignored``"""
        if status not in ("resolved", "ignored"):
            raise PendingTransitionError('Invalid status. Must be "resolved" or "ignored".')
        record = self.get(pending_id)
        if record is None:
            return None
        return self._transition(record, status)

    def get(self, pending_id: int) -> Optional[PendingBookingEvent]:
        return self.repo.get_by_id(self.db, self.salon_id, pending_id)

    def list_events(self, status: str = "pending", limit: int = PENDING_LIST_LIMIT) -> list[PendingBookingEvent]:
        """Records with ``status`` (or every status for "all"), newest first"""
        if status != "all" and status not in STATUSES:
            raise PendingTransitionError(f"Unknown pending status: {status}")
        return self.repo.list_events(
            self.db, self.salon_id, None if status == "all" else status, limit
        )

    def _transition(self, record: PendingBookingEvent, status: str) -> PendingBookingEvent:
        record.status = status
        record.resolved_at = datetime.utcnow() if status == "resolved" else None
        record = self.repo.save(self.db, record)
        logger.info(f"📋 Pending booking event {record.id} marked {status}")
        return record
