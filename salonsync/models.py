from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Salon(Base):
    """Business unit owning clients, staff, services and bookings"""

    __tablename__ = "salons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    clients = relationship("Client", back_populates="salon")
    staff = relationship("StaffMember", back_populates="salon")
    services = relationship("Service", back_populates="salon")
    bookings = relationship("Booking", back_populates="salon")


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("salon_id", "client_code", name="uq_clients_salon_code"),)

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(Integer, ForeignKey("salons.id"), nullable=False, index=True)
    client_code = Column(String(20), nullable=False)  # Human-readable code, e.g. C00042
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True, index=True)  # 9 digits, no prefix or spaces
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    salon = relationship("Salon", back_populates="clients")
    bookings = relationship("Booking", back_populates="client")


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(Integer, ForeignKey("salons.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    salon = relationship("Salon", back_populates="staff")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(Integer, ForeignKey("salons.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    salon = relationship("Salon", back_populates="services")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(Integer, ForeignKey("salons.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    booking_date = Column(Date, nullable=False, index=True)
    booking_time = Column(String(5), nullable=False)  # HH:MM format
    duration_minutes = Column(Integer, nullable=True)
    base_price = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), default="scheduled", nullable=False)  # scheduled, completed, cancelled
    source = Column(String(50), nullable=True)  # Provenance tag, e.g. "booksy"
    notes = Column(Text, nullable=True)  # May carry an [event_id:...] idempotency marker
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    salon = relationship("Salon", back_populates="bookings")
    client = relationship("Client", back_populates="bookings")
    staff_member = relationship("StaffMember")
    service = relationship("Service")


class PendingBookingEvent(Base):
    """Inbound notification that could not be applied automatically"""

    __tablename__ = "pending_booking_events"
    __table_args__ = (
        UniqueConstraint("salon_id", "message_id", name="uq_pending_booking_events_message"),
    )

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(Integer, ForeignKey("salons.id"), nullable=False, index=True)
    message_id = Column(String(255), nullable=False)
    subject = Column(String(1000), nullable=True)
    body_snippet = Column(Text, nullable=True)  # Bounded by PENDING_BODY_SNIPPET_CHARS
    parsed_data = Column(JSON, nullable=True)  # Serialized ParsedEvent, null when parsing failed
    failure_reason = Column(
        String(50), nullable=False
    )  # parse_failed, service_not_found, employee_not_found, other
    failure_detail = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, resolved, ignored
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    resolved_at = Column(DateTime, nullable=True)
