"""Booking event repositories - Database operations for the reconciliation pipeline"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Client, PendingBookingEvent, Salon, Service, StaffMember


def marker_tag(marker: str) -> str:
    """Notes fragment identifying the source event of a booking"""
    return f"[event_id:{marker}]"


class DirectoryRepository:
    """Read/insert access to salons, clients, staff and services"""

    @staticmethod
    def get_salon(db: Session, salon_id: int) -> Optional[Salon]:
        return db.query(Salon).filter(Salon.id == salon_id).first()

    @staticmethod
    def get_client_by_phone(db: Session, salon_id: int, phone: str) -> Optional[Client]:
        """Get a client by exact phone number within a salon"""
        return (
            db.query(Client)
            .filter(Client.salon_id == salon_id, Client.phone == phone)
            .order_by(Client.id)
            .first()
        )

    @staticmethod
    def next_client_code(db: Session, salon_id: int) -> str:
        """Next free C00001-style code for a salon"""
        count = db.query(func.count(Client.id)).filter(Client.salon_id == salon_id).scalar() or 0
        number = count + 1
        while True:
            code = f"C{number:05d}"
            taken = (
                db.query(Client.id)
                .filter(Client.salon_id == salon_id, Client.client_code == code)
                .first()
            )
            if not taken:
                return code
            number += 1

    @staticmethod
    def create_client(db: Session, salon_id: int, **client_data) -> Client:
        """Create a new client"""
        client = Client(salon_id=salon_id, **client_data)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def list_staff(db: Session, salon_id: int) -> list[StaffMember]:
        """All staff members of a salon, active or not"""
        return (
            db.query(StaffMember)
            .filter(StaffMember.salon_id == salon_id)
            .order_by(StaffMember.id)
            .all()
        )

    @staticmethod
    def get_staff_member(db: Session, salon_id: int, staff_id: int) -> Optional[StaffMember]:
        return (
            db.query(StaffMember)
            .filter(StaffMember.id == staff_id, StaffMember.salon_id == salon_id)
            .first()
        )

    @staticmethod
    def list_active_services(db: Session, salon_id: int) -> list[Service]:
        return (
            db.query(Service)
            .filter(Service.salon_id == salon_id, Service.active.is_(True))
            .order_by(Service.id)
            .all()
        )

    @staticmethod
    def get_service(db: Session, salon_id: int, service_id: int) -> Optional[Service]:
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.salon_id == salon_id)
            .first()
        )


class BookingRepository:
    """Ledger access for bookings"""

    @staticmethod
    def find_by_marker(db: Session, salon_id: int, source: str, marker: str) -> Optional[Booking]:
        """Booking created from the event carrying ``marker``"""
        return (
            db.query(Booking)
            .filter(
                Booking.salon_id == salon_id,
                Booking.source == source,
                Booking.notes.contains(marker_tag(marker), autoescape=True),
            )
            .order_by(Booking.id)
            .first()
        )

    @staticmethod
    def find_duplicate(
        db: Session,
        salon_id: int,
        client_id: int,
        staff_id: Optional[int],
        service_id: Optional[int],
        booking_date: date,
        booking_time: str,
        source: str,
    ) -> Optional[Booking]:
        """Non-cancelled booking with the same (client, staff, service, date, time, source)"""
        return (
            db.query(Booking)
            .filter(
                Booking.salon_id == salon_id,
                Booking.client_id == client_id,
                Booking.staff_id == staff_id,
                Booking.service_id == service_id,
                Booking.booking_date == booking_date,
                Booking.booking_time == booking_time,
                Booking.source == source,
                Booking.status != "cancelled",
            )
            .order_by(Booking.id)
            .first()
        )

    @staticmethod
    def find_staff_conflict(
        db: Session,
        salon_id: int,
        staff_id: int,
        booking_date: date,
        booking_time: str,
        exclude_id: Optional[int] = None,
    ) -> Optional[Booking]:
        """Non-cancelled booking of any source holding the staff member's slot"""
        query = db.query(Booking).filter(
            Booking.salon_id == salon_id,
            Booking.staff_id == staff_id,
            Booking.booking_date == booking_date,
            Booking.booking_time == booking_time,
            Booking.status != "cancelled",
        )
        if exclude_id is not None:
            query = query.filter(Booking.id != exclude_id)
        return query.order_by(Booking.id).first()

    @staticmethod
    def count_by_status(db: Session, salon_id: int, source: str) -> dict[str, int]:
        """Booking counts per status for one source"""
        rows = (
            db.query(Booking.status, func.count(Booking.id))
            .filter(Booking.salon_id == salon_id, Booking.source == source)
            .group_by(Booking.status)
            .all()
        )
        return {status: count for status, count in rows}

    @staticmethod
    def list_recent(db: Session, salon_id: int, source: str, limit: int = 20) -> list[Booking]:
        """Most recently created bookings of one source, with client, staff and service loaded"""
        return (
            db.query(Booking)
            .options(
                joinedload(Booking.client),
                joinedload(Booking.staff_member),
                joinedload(Booking.service),
            )
            .filter(Booking.salon_id == salon_id, Booking.source == source)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def find_scheduled_at(db: Session, salon_id: int, booking_date: date, booking_time: str) -> list[Booking]:
        """Scheduled bookings at a slot, most recent first, with their clients loaded"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.client))
            .filter(
                Booking.salon_id == salon_id,
                Booking.booking_date == booking_date,
                Booking.booking_time == booking_time,
                Booking.status == "scheduled",
            )
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .all()
        )

    @staticmethod
    def create_booking(db: Session, salon_id: int, **booking_data) -> Booking:
        booking = Booking(salon_id=salon_id, **booking_data)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            if hasattr(booking, key):
                setattr(booking, key, value)

        db.commit()
        db.refresh(booking)
        return booking


class PendingEventRepository:
    """Storage for events waiting on an operator"""

    @staticmethod
    def get_by_message_id(db: Session, salon_id: int, message_id: str) -> Optional[PendingBookingEvent]:
        return (
            db.query(PendingBookingEvent)
            .filter(
                PendingBookingEvent.salon_id == salon_id,
                PendingBookingEvent.message_id == message_id,
            )
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, salon_id: int, pending_id: int) -> Optional[PendingBookingEvent]:
        return (
            db.query(PendingBookingEvent)
            .filter(PendingBookingEvent.id == pending_id, PendingBookingEvent.salon_id == salon_id)
            .first()
        )

    @staticmethod
    def list_events(
        db: Session, salon_id: int, status: Optional[str] = "pending", limit: int = 50
    ) -> list[PendingBookingEvent]:
        """Pending-queue records, newest first; ``status=None`` returns every status"""
        query = db.query(PendingBookingEvent).filter(PendingBookingEvent.salon_id == salon_id)

        if status:
            query = query.filter(PendingBookingEvent.status == status)

        return (
            query.order_by(PendingBookingEvent.created_at.desc(), PendingBookingEvent.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def save(db: Session, record: PendingBookingEvent) -> PendingBookingEvent:
        db.add(record)
        db.commit()
        db.refresh(record)
        return record
