"""Booking event schemas - Pydantic models for webhook and operator endpoints"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class BookingEmail(BaseModel):
    """One notification as delivered by the mailbox poller"""

    id: Optional[str] = None
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    idempotencyKey: Optional[str] = None


class BookingWebhookPayload(BaseModel):
    """Batch of notifications for one salon"""

    salonId: int
    emails: list[BookingEmail] = Field(min_length=1)


class BookingEmailResult(BaseModel):
    """Per-notification outcome in a webhook response"""

    emailId: Optional[str] = None
    success: bool
    status: str
    pending: bool = False
    deduplicated: bool = False
    action: Optional[str] = None
    bookingId: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    pendingEventId: Optional[int] = None


class BookingWebhookResponse(BaseModel):
    success: bool
    processed: int
    successful: int
    pending: int
    errors: int
    results: list[BookingEmailResult]


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: int
    clientId: int
    staffId: Optional[int]
    serviceId: Optional[int]
    bookingDate: date
    bookingTime: str
    durationMinutes: Optional[int]
    basePrice: Optional[Decimal]
    status: str
    source: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class BookingStatsResponse(BaseModel):
    """Counts of bookings written from booking events"""

    source: str
    total: int
    scheduled: int
    cancelled: int


class BookingLogEntry(BaseModel):
    id: int
    bookingDate: date
    bookingTime: str
    status: str
    basePrice: Optional[Decimal]
    createdAt: Optional[datetime]
    clientName: Optional[str]
    clientPhone: Optional[str]
    staffName: Optional[str]
    serviceName: Optional[str]


class BookingLogsResponse(BaseModel):
    bookings: list[BookingLogEntry]


class PendingEventResponse(BaseModel):
    """Schema for pending-queue record response"""

    id: int
    messageId: str
    subject: Optional[str]
    bodySnippet: Optional[str]
    parsedData: Optional[dict[str, Any]]
    failureReason: str
    failureDetail: Optional[str]
    status: str
    createdAt: datetime
    resolvedAt: Optional[datetime]

    class Config:
        from_attributes = True


class PendingStatusUpdate(BaseModel):
    """Manual status change for a pending record"""

    status: str  # resolved or ignored


class PendingAssignRequest(BaseModel):
    """Operator-chosen staff and/or service for a parked new booking"""

    staffId: Optional[int] = None
    serviceId: Optional[int] = None

    @field_validator("staffId", "serviceId")
    @classmethod
    def validate_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Id must be a positive integer")
        return v


class PendingAssignResponse(BaseModel):
    success: bool
    booking: BookingResponse
    deduplicated: bool = False
