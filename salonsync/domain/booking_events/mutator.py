"""Booking mutations applied from reconciled booking events"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import BOOKING_EVENTS_SOURCE, DEFAULT_BOOKING_DURATION_MINUTES
from ...models import Booking, Client, Service, StaffMember
from .events import CancelEvent, RescheduleEvent, TimeSlot
from .repository import BookingRepository, marker_tag
from .text_normalizer import fold_diacritics

logger = logging.getLogger(__name__)


class BookingEventError(Exception):
    """Base error for booking event reconciliation"""

    reason = "other"


class BookingNotFoundError(BookingEventError):
    """No scheduled booking matches a reschedule or cancel event"""

    reason = "booking_not_found"


class SlotTakenError(BookingEventError):
    """The staff member already has a live booking at the target slot"""

    reason = "slot_taken"


def names_match(subject_name: str, client_name: Optional[str]) -> bool:
    """Case- and accent-insensitive substring match in either direction"""
    subject = fold_diacritics(subject_name)
    client = fold_diacritics(client_name or "")
    if not subject or not client:
        return False
    return subject in client or client in subject


def _append_note(notes: Optional[str], note: str) -> str:
    return f"{notes} | {note}" if notes else note


class BookingMutator:
    """Applies exactly one ledger write per call: insert, move or cancel"""

    def __init__(self, db: Session, salon_id: int, source: str = BOOKING_EVENTS_SOURCE):
        self.db = db
        self.salon_id = salon_id
        self.source = source
        self.repo = BookingRepository()

    def create(
        self,
        client: Client,
        staff: Optional[StaffMember],
        service: Optional[Service],
        slot: TimeSlot,
        price: Optional[Decimal] = None,
        marker: Optional[str] = None,
    ) -> tuple[Booking, bool]:
        """
        Insert a scheduled booking unless an identical live one already exists.

        Returns (booking, created). The duplicate check covers client, staff,
        service, date, time and source, ignoring cancelled bookings. Raises
        SlotTakenError when the staff member's slot is held by another booking.
        """
        staff_id = staff.id if staff else None
        service_id = service.id if service else None

        existing = self.repo.find_duplicate(
            self.db,
            self.salon_id,
            client.id,
            staff_id,
            service_id,
            slot.date,
            slot.start_time,
            self.source,
        )
        if existing:
            logger.info(f"♻️ Booking {existing.id} already exists for this slot, skipping insert")
            return existing, False

        if staff_id is not None:
            self._check_slot_free(staff_id, slot.date, slot.start_time, "Slot already taken")

        duration = slot.duration_minutes
        if duration is None or duration <= 0:
            if duration is not None:
                logger.warning(
                    f"⚠️ Non-positive duration {duration} for {slot.date} {slot.start_time}, using service duration"
                )
            duration = (service.duration_minutes if service else None) or DEFAULT_BOOKING_DURATION_MINUTES

        if price is None and service is not None:
            price = service.price

        notes = f"Source: {self.source}"
        if marker:
            notes = _append_note(notes, marker_tag(marker))

        booking = self.repo.create_booking(
            self.db,
            self.salon_id,
            client_id=client.id,
            staff_id=staff_id,
            service_id=service_id,
            booking_date=slot.date,
            booking_time=slot.start_time,
            duration_minutes=duration,
            base_price=price,
            status="scheduled",
            source=self.source,
            notes=notes,
        )
        logger.info(f"✅ Created booking {booking.id} on {slot.date} {slot.start_time}")
        return booking, True

    def reschedule(self, event: RescheduleEvent, marker: Optional[str] = None) -> Booking:
        """Move the matching booking to the new slot, keeping its id"""
        booking = self._find_for_client(event.old_date, event.old_time, event.subject_name)
        if booking is None:
            raise BookingNotFoundError(
                f"No booking found to reschedule for {event.subject_name} "
                f"on {event.old_date} {event.old_time}"
            )

        if booking.staff_id is not None:
            self._check_slot_free(
                booking.staff_id,
                event.slot.date,
                event.slot.start_time,
                "New slot already taken",
                exclude_id=booking.id,
            )

        updates = {
            "booking_date": event.slot.date,
            "booking_time": event.slot.start_time,
            "notes": self._event_note(booking.notes, f"Rescheduled via {self.source}", marker),
        }
        duration = event.slot.duration_minutes
        if duration and duration > 0:
            updates["duration_minutes"] = duration

        booking = self.repo.update_booking(self.db, booking, **updates)
        logger.info(f"🔁 Moved booking {booking.id} to {event.slot.date} {event.slot.start_time}")
        return booking

    def cancel(self, event: CancelEvent, marker: Optional[str] = None) -> Booking:
        """Mark the matching booking cancelled; the row is kept"""
        booking = self._find_for_client(event.slot.date, event.slot.start_time, event.subject_name)
        if booking is None:
            raise BookingNotFoundError(
                f"No booking found to cancel for {event.subject_name} "
                f"on {event.slot.date} {event.slot.start_time}"
            )

        booking = self.repo.update_booking(
            self.db,
            booking,
            status="cancelled",
            notes=self._event_note(booking.notes, f"Cancelled via {self.source}", marker),
        )
        logger.info(f"🚫 Cancelled booking {booking.id}")
        return booking

    @staticmethod
    def _event_note(notes: Optional[str], note: str, marker: Optional[str]) -> str:
        # The marker lets a redelivered reschedule/cancel be recognised as applied
        if marker:
            note = f"{note} {marker_tag(marker)}"
        return _append_note(notes, note)

    def _check_slot_free(
        self, staff_id: int, booking_date, booking_time: str, message: str, exclude_id: Optional[int] = None
    ) -> None:
        conflict = self.repo.find_staff_conflict(
            self.db, self.salon_id, staff_id, booking_date, booking_time, exclude_id=exclude_id
        )
        if conflict:
            raise SlotTakenError(
                f"{message}: {booking_date} {booking_time} (staff {staff_id}, booking {conflict.id})"
            )

    def _find_for_client(self, booking_date, booking_time: str, subject_name: str) -> Optional[Booking]:
        """Most recent scheduled booking at the slot whose client name loosely matches"""
        candidates = self.repo.find_scheduled_at(self.db, self.salon_id, booking_date, booking_time)
        for booking in candidates:
            if booking.client and names_match(subject_name, booking.client.full_name):
                return booking
        return None
