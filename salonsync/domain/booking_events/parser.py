"""
Booking notification parser

Turns the subject and body of a booking-platform notification e-mail into a
typed event. Notifications arrive in Polish or English, for example:

    Subject: Anna Kowalska: nowa rezerwacja

    Anna Kowalska
    123 456 789
    anna@example.com

    Strzyżenie damskie wł. średnie
    250,00 zł

    27 października 2024, 16:41 - 17:11

    Pracownik:
    Kasia

Every extractor tolerates absence; only the fields an event kind cannot live
without make parsing fail (``parse_event`` returns ``None``).
"""

import datetime
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from ...shared.validators import EMAIL_PATTERN
from .events import CancelEvent, NewBookingEvent, ParsedEvent, RescheduleEvent, TimeSlot
from .text_normalizer import fold_diacritics, normalize

logger = logging.getLogger(__name__)

# Keys are diacritic-folded, so "września" and "wrzesnia" share one entry
MONTHS: dict[str, int] = {
    # Polish, genitive (as used in dates) and nominative
    "stycznia": 1, "styczen": 1,
    "lutego": 2, "luty": 2,
    "marca": 3, "marzec": 3,
    "kwietnia": 4, "kwiecien": 4,
    "maja": 5, "maj": 5,
    "czerwca": 6, "czerwiec": 6,
    "lipca": 7, "lipiec": 7,
    "sierpnia": 8, "sierpien": 8,
    "wrzesnia": 9, "wrzesien": 9,
    "pazdziernika": 10, "pazdziernik": 10,
    "listopada": 11, "listopad": 11,
    "grudnia": 12, "grudzien": 12,
    # English
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

FORWARD_PREFIX = re.compile(r"^\s*(?:(?:re|fw|fwd|pd|odp)\s*:\s*)+", re.IGNORECASE)

_OBJECT_PL = r"(?:rezerwacj[eę]|wizyt[eę])"
_OBJECT_EN = r"(?:(?:a|the|their|his|her)\s+)?(?:booking|appointment|visit|reservation)"

CANCEL_TRIGGER = re.compile(
    rf"(?:odwo[lł]a[lł]a?|anulowa[lł]a?)\s+{_OBJECT_PL}|cancel+ed\s+{_OBJECT_EN}",
    re.IGNORECASE,
)
RESCHEDULE_TRIGGER = re.compile(
    rf"(?:zmieni[lł]a?|przesun[aą][lł]|przesun[eę][lł]a)\s+{_OBJECT_PL}"
    rf"|(?:changed|rescheduled|moved)\s+{_OBJECT_EN}",
    re.IGNORECASE,
)
NEW_TRIGGER = re.compile(
    r"nowa\s+rezerwacja|new\s+(?:booking|appointment|reservation)",
    re.IGNORECASE,
)
# Checked in this order: a cancellation mail may also mention the original booking
TRIGGERS = (("cancel", CANCEL_TRIGGER), ("reschedule", RESCHEDULE_TRIGGER), ("new", NEW_TRIGGER))

CLIENT_LABEL = re.compile(r"^(?:klient(?:ka)?|client|customer)\s*:\s*(.+)$", re.IGNORECASE)
STAFF_LABEL = re.compile(
    r"^(?:pracownik|pracowniczka|specjalist(?:a|ka)|staff|employee|stylist)\s*:\s*(.*)$",
    re.IGNORECASE,
)
ANY_LABEL = re.compile(
    r"^(?:pracownik|pracowniczka|specjalist(?:a|ka)|staff|employee|stylist|klient(?:ka)?"
    r"|client|customer|from|to|subject|temat|od|do|data|date)\s*:",
    re.IGNORECASE,
)

_DATE = r"(?P<day>\d{1,2})\.?\s+(?P<month>[^\W\d_]+)\s+(?P<year>\d{4})"
_AT = r"(?:,\s*|\s+)(?:(?:o|at|godz\.?)\s+)?"
_START = r"(?P<start>\d{1,2}:\d{2})"
_END = r"(?:\s*-\s*(?P<end>\d{1,2}:\d{2}))?"

DATE_RANGE = re.compile(rf"{_DATE}{_AT}{_START}{_END}", re.IGNORECASE)
OLD_SLOT = re.compile(rf"(?:\bz\s+dnia|\bfrom)\s*:?\s+{_DATE}{_AT}{_START}{_END}", re.IGNORECASE)
NEW_SLOT = re.compile(rf"(?:\bna|\bto)\s*:?\s+{_DATE}{_AT}{_START}{_END}", re.IGNORECASE)

PHONE = re.compile(r"(?<![\d+])(?:\+?48[ \t]*)?(\d{3})[ \t]?(\d{3})[ \t]?(\d{3})(?!\d)")
EMAIL = re.compile(EMAIL_PATTERN)
PRICE = re.compile(r"(\d{1,5}[.,]\d{2})\s*(?:zł|zl|pln)\b", re.IGNORECASE)
URL = re.compile(r"(?:https?://|www\.)", re.IGNORECASE)
TIME = re.compile(r"\b\d{1,2}:\d{2}\b")
LETTER = re.compile(r"[^\W\d_]")
PRICE_LABEL = re.compile(r"^(?:cena|koszt|razem|suma|do zap[lł]aty|price|cost|total)$", re.IGNORECASE)

MAX_SERVICE_LINES = 3


class UnknownMonthError(ValueError):
    """A date expression used a month name missing from MONTHS"""


def month_number(name: str) -> int:
    month = MONTHS.get(fold_diacritics(name))
    if month is None:
        raise UnknownMonthError(name)
    return month


def _clock(value: Optional[str]) -> Optional[str]:
    """Zero-pad HH:MM and reject impossible times"""
    if not value:
        return None
    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time: {value}")
    return f"{hours:02d}:{minutes:02d}"


def _slot_from_match(match: re.Match) -> TimeSlot:
    """Build a TimeSlot from a DATE_RANGE / OLD_SLOT / NEW_SLOT match"""
    day = datetime.date(int(match.group("year")), month_number(match.group("month")), int(match.group("day")))
    return TimeSlot(date=day, start_time=_clock(match.group("start")), end_time=_clock(match.group("end")))


def _first_slot(pattern: re.Pattern, text: str, pos: int = 0) -> Optional[TimeSlot]:
    """First match of ``pattern`` that forms a real calendar slot"""
    unknown_months = []
    for match in pattern.finditer(text, pos):
        try:
            return _slot_from_match(match)
        except UnknownMonthError as e:
            unknown_months.append(str(e))
        except ValueError:
            continue
    if unknown_months:
        logger.warning(f"⚠️ Unknown month name(s) in booking notification: {unknown_months}")
    return None


def extract_date_range(text: str) -> Optional[TimeSlot]:
    return _first_slot(DATE_RANGE, text)


def extract_reschedule_slots(text: str) -> tuple[Optional[TimeSlot], Optional[TimeSlot]]:
    """Return (old slot, new slot) introduced by the "from date" / "to date" markers"""
    old_match = None
    old_slot = None
    for match in OLD_SLOT.finditer(text):
        try:
            old_slot = _slot_from_match(match)
            old_match = match
            break
        except ValueError:
            continue

    new_slot = None
    if old_match is not None:
        new_slot = _first_slot(NEW_SLOT, text, old_match.end())
    if new_slot is None:
        new_slot = _first_slot(NEW_SLOT, text)
    return old_slot, new_slot


def extract_phone(text: str) -> Optional[str]:
    """9-digit national number, contiguous or space separated, optional +48 prefix"""
    match = PHONE.search(text)
    if not match:
        return None
    return "".join(match.groups())


def extract_email(lines: list[str]) -> Optional[str]:
    """First address outside forwarded "From:" / "To:" header lines"""
    for line in lines:
        if ANY_LABEL.match(line):
            continue
        match = EMAIL.search(line)
        if match:
            return match.group(0).lower()
    return None


def _is_service_line(line: str, subject_name: str) -> bool:
    if not LETTER.search(line):
        return False
    if URL.search(line) or EMAIL.search(line) or PHONE.search(line):
        return False
    if TIME.search(line) or PRICE.search(line) or ANY_LABEL.match(line):
        return False
    if subject_name and fold_diacritics(line) == fold_diacritics(subject_name):
        return False
    return True


def extract_service_and_price(lines: list[str], subject_name: str = "") -> tuple[Optional[str], Optional[Decimal]]:
    """
    Service name and price from the first line carrying a "N,NN zł" token.

    The service name is the text before the price on that line, or otherwise
    the block of non-empty, non-URL, non-contact lines directly above it.
    """
    for idx, line in enumerate(lines):
        price_match = PRICE.search(line)
        if not price_match:
            continue

        try:
            price = Decimal(price_match.group(1).replace(",", "."))
        except InvalidOperation:
            price = None

        inline = line[: price_match.start()].strip(" :-")
        if inline and not PRICE_LABEL.match(inline) and _is_service_line(inline, subject_name):
            return inline, price

        collected: list[str] = []
        i = idx - 1
        while i >= 0 and not lines[i]:
            i -= 1
        while i >= 0 and lines[i] and len(collected) < MAX_SERVICE_LINES:
            if not _is_service_line(lines[i], subject_name):
                break
            collected.insert(0, lines[i])
            i -= 1

        return (" ".join(collected) or None), price

    return None, None


def extract_staff_name(lines: list[str]) -> Optional[str]:
    """Name after a "Pracownik:" / "Staff:" label, on the same or the next non-empty line"""
    for idx, line in enumerate(lines):
        match = STAFF_LABEL.match(line)
        if not match:
            continue
        inline = match.group(1).strip()
        if inline:
            return inline
        for following in lines[idx + 1 :]:
            if not following:
                continue
            if ANY_LABEL.match(following) or URL.search(following):
                return None
            return following
        return None
    return None


def classify(subject: str, body: str) -> tuple[Optional[str], str]:
    """
    Determine the event kind and the name preceding the trigger phrase.

    Returns (kind, subject_name). ``kind`` is None when neither the subject nor
    a fallback "Klient:" line in the body identify the notification.
    """
    cleaned = FORWARD_PREFIX.sub("", subject).strip()

    for kind, pattern in TRIGGERS:
        match = pattern.search(cleaned)
        if match:
            name = cleaned[: match.start()].strip(" \t:-,")
            if not name:
                name = _fallback_name(body) or ""
            return kind, name

    # Subject carried no trigger: fall back to the body
    name = _fallback_name(body)
    if not name:
        return None, ""
    for kind, pattern in TRIGGERS:
        if pattern.search(body):
            return kind, name
    return "new", name


def _fallback_name(body: str) -> Optional[str]:
    for line in body.split("\n"):
        match = CLIENT_LABEL.match(line)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def parse_event(subject: str, body: str) -> Optional[ParsedEvent]:
    """
    Parse a booking notification into a NewBookingEvent, RescheduleEvent or CancelEvent.

    Returns None when the notification is structurally unusable: unknown kind,
    no subject name, or a field the detected kind requires is missing.
    """
    subject = normalize(subject or "")
    body = normalize(body or "")

    kind, subject_name = classify(subject, body)
    if kind is None or not subject_name:
        logger.warning(f"⚠️ Could not classify booking notification: {subject[:120]!r}")
        return None

    try:
        if kind == "cancel":
            slot = extract_date_range(body)
            if slot is None:
                logger.warning("⚠️ Cancellation notification without a date/time")
                return None
            return CancelEvent(subject_name=subject_name, slot=slot)

        if kind == "reschedule":
            old_slot, new_slot = extract_reschedule_slots(body)
            if old_slot is None or new_slot is None:
                logger.warning("⚠️ Reschedule notification without both old and new date/time")
                return None
            return RescheduleEvent(
                subject_name=subject_name,
                old_date=old_slot.date,
                old_time=old_slot.start_time,
                slot=new_slot,
            )

        slot = extract_date_range(body)
        if slot is None or slot.end_time is None:
            logger.warning("⚠️ New booking notification without a date/time range")
            return None

        phone = extract_phone(body)
        if not phone:
            logger.warning("⚠️ New booking notification without a client phone number")
            return None

        lines = body.split("\n")
        service_name, price = extract_service_and_price(lines, subject_name)
        return NewBookingEvent(
            subject_name=subject_name,
            client_phone=phone,
            client_email=extract_email(lines),
            service_name=service_name,
            price=price,
            slot=slot,
            staff_name=extract_staff_name(lines),
        )
    except ValueError as e:
        logger.warning(f"⚠️ Invalid booking notification field: {e}")
        return None
