"""Typed events extracted from booking-platform notifications"""

import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from ...shared.validators import normalize_pl_phone, validate_email


def minutes_of_day(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


class TimeSlot(BaseModel):
    """Calendar date plus wall-clock start (and optional end) time, HH:MM"""

    date: datetime.date
    start_time: str
    end_time: Optional[str] = None

    @property
    def duration_minutes(self) -> Optional[int]:
        # Zero or negative spans are kept as-is; validation happens downstream
        if not self.end_time:
            return None
        return minutes_of_day(self.end_time) - minutes_of_day(self.start_time)


class NewBookingEvent(BaseModel):
    kind: Literal["new"] = "new"
    subject_name: str
    client_phone: str
    client_email: Optional[str] = None
    service_name: Optional[str] = None
    price: Optional[Decimal] = None
    slot: TimeSlot
    staff_name: Optional[str] = None

    @field_validator("client_phone")
    @classmethod
    def check_phone(cls, v):
        return normalize_pl_phone(v)

    @field_validator("client_email")
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email(v)
        return v

    @property
    def duration_minutes(self) -> Optional[int]:
        return self.slot.duration_minutes


class RescheduleEvent(BaseModel):
    kind: Literal["reschedule"] = "reschedule"
    subject_name: str
    old_date: datetime.date
    old_time: str
    slot: TimeSlot

    @property
    def duration_minutes(self) -> Optional[int]:
        return self.slot.duration_minutes


class CancelEvent(BaseModel):
    kind: Literal["cancel"] = "cancel"
    subject_name: str
    slot: TimeSlot

    @property
    def duration_minutes(self) -> Optional[int]:
        return self.slot.duration_minutes


ParsedEvent = Annotated[
    Union[NewBookingEvent, RescheduleEvent, CancelEvent],
    Field(discriminator="kind"),
]

_parsed_event_adapter = TypeAdapter(ParsedEvent)


def event_to_dict(event: ParsedEvent) -> dict:
    """JSON-safe form stored on pending records"""
    return event.model_dump(mode="json")


def event_from_dict(data: dict) -> ParsedEvent:
    return _parsed_event_adapter.validate_python(data)
