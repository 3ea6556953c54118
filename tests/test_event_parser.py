"""
Tests for booking notification parsing.
"""

import datetime
from decimal import Decimal

from salonsync.domain.booking_events.events import (
    CancelEvent,
    NewBookingEvent,
    RescheduleEvent,
    event_from_dict,
    event_to_dict,
)
from salonsync.domain.booking_events.parser import (
    classify,
    extract_phone,
    extract_service_and_price,
    extract_staff_name,
    month_number,
    parse_event,
)


def test_parses_polish_new_booking(new_booking_email):
    subject, body = new_booking_email()

    event = parse_event(subject, body)

    assert isinstance(event, NewBookingEvent)
    assert event.subject_name == "Jan Nowak"
    assert event.client_phone == "123456789"
    assert event.client_email == "jan.nowak@example.com"
    assert event.service_name == "Haircut"
    assert event.price == Decimal("80.00")
    assert event.slot.date == datetime.date(2024, 10, 25)
    assert event.slot.start_time == "14:00"
    assert event.slot.end_time == "14:45"
    assert event.duration_minutes == 45
    assert event.staff_name == "Kowalski"


def test_parses_english_new_booking():
    subject = "Anna Smith: new booking"
    body = "\n".join(
        [
            "Anna Smith",
            "+48 600 700 800",
            "Anna.Smith@Example.com",
            "",
            "Colouring",
            "250.00 PLN",
            "",
            "3 November 2024, 9:00 - 10:30",
            "",
            "Staff: Kasia",
        ]
    )

    event = parse_event(subject, body)

    assert isinstance(event, NewBookingEvent)
    assert event.client_phone == "600700800"
    assert event.client_email == "anna.smith@example.com"
    assert event.service_name == "Colouring"
    assert event.price == Decimal("250.00")
    assert event.slot.start_time == "09:00"
    assert event.duration_minutes == 90
    assert event.staff_name == "Kasia"


def test_multi_line_service_name_and_header_email_skipped():
    subject = "Fwd: Ewa Lis: nowa rezerwacja"
    body = "\n".join(
        [
            "From: Booksy <no-reply@booksy.com>",
            "",
            "Ewa Lis",
            "500600700",
            "ewa.lis@example.com",
            "",
            "Strzyżenie damskie",
            "wł. średnie",
            "120,00 zł",
            "",
            "3 listopada 2024, 10:00 - 10:45",
            "",
            "Pracownik:",
            "Kasia",
        ]
    )

    event = parse_event(subject, body)

    assert event.subject_name == "Ewa Lis"
    assert event.client_email == "ewa.lis@example.com"
    assert event.service_name == "Strzyżenie damskie wł. średnie"
    assert event.price == Decimal("120.00")


def test_mojibake_notification_is_repaired_before_parsing(new_booking_email):
    subject, body = new_booking_email(service="Strzyżenie damskie", price="120,00 zł")
    garbled_body = body.encode("utf-8").decode("cp1252")

    event = parse_event(subject, garbled_body)

    assert event.service_name == "Strzyżenie damskie"
    assert event.slot.date == datetime.date(2024, 10, 25)


def test_missing_staff_and_service_are_tolerated(new_booking_email):
    subject, body = new_booking_email(service=None, price=None, staff=None)

    event = parse_event(subject, body)

    assert isinstance(event, NewBookingEvent)
    assert event.service_name is None
    assert event.price is None
    assert event.staff_name is None


def test_new_booking_without_time_range_fails(new_booking_email):
    subject, body = new_booking_email(when="25 października 2024")

    assert parse_event(subject, body) is None


def test_new_booking_without_phone_fails(new_booking_email):
    subject, body = new_booking_email(phone="")

    assert parse_event(subject, body) is None


def test_unknown_month_fails_parsing(new_booking_email):
    subject, body = new_booking_email(when="25 brumaire 2024, 14:00 - 14:45")

    assert parse_event(subject, body) is None


def test_impossible_time_fails_parsing(new_booking_email):
    subject, body = new_booking_email(when="25 października 2024, 25:00 - 25:45")

    assert parse_event(subject, body) is None


def test_parses_reschedule(reschedule_email):
    subject, body = reschedule_email()

    event = parse_event(subject, body)

    assert isinstance(event, RescheduleEvent)
    assert event.subject_name == "Jan Nowak"
    assert event.old_date == datetime.date(2024, 10, 25)
    assert event.old_time == "14:00"
    assert event.slot.date == datetime.date(2024, 10, 26)
    assert event.slot.start_time == "15:30"
    assert event.duration_minutes == 45


def test_parses_english_reschedule():
    subject = "Jan Nowak: rescheduled their booking"
    body = "from 25 October 2024, 14:00 - 14:45\nto 26 October 2024, 15:30 - 16:15"

    event = parse_event(subject, body)

    assert isinstance(event, RescheduleEvent)
    assert event.old_time == "14:00"
    assert event.slot.start_time == "15:30"


def test_reschedule_accepts_time_connectors(reschedule_email):
    subject, _ = reschedule_email()
    body = "z dnia 25 października 2024 o 14:00 na 26 października 2024, godz. 15:30 - 16:15"

    event = parse_event(subject, body)

    assert isinstance(event, RescheduleEvent)
    assert event.old_date == datetime.date(2024, 10, 25)
    assert event.old_time == "14:00"
    assert event.slot.date == datetime.date(2024, 10, 26)
    assert event.slot.start_time == "15:30"

    english = parse_event(
        "Jan Nowak: rescheduled their booking",
        "from 25 October 2024 at 14:00 to 26 October 2024 at 15:30",
    )
    assert english.old_time == "14:00"
    assert english.slot.start_time == "15:30"


def test_reschedule_without_new_slot_fails(reschedule_email):
    subject, _ = reschedule_email()

    assert parse_event(subject, "z dnia 25 października 2024, 14:00 - 14:45") is None


def test_parses_cancel(cancel_email):
    subject, body = cancel_email()

    event = parse_event(subject, body)

    assert isinstance(event, CancelEvent)
    assert event.subject_name == "Jan Nowak"
    assert event.slot.date == datetime.date(2024, 10, 26)
    assert event.slot.start_time == "15:30"


def test_parses_english_cancel():
    event = parse_event("Jan Nowak: cancelled the appointment", "26 October 2024, 15:30 - 16:15")

    assert isinstance(event, CancelEvent)


def test_cancel_without_date_fails():
    assert parse_event("Jan Nowak: odwołał rezerwację", "Jan Nowak odwołał rezerwację") is None


def test_unrecognised_notification_fails():
    assert parse_event("Newsletter", "Promocja tygodnia!") is None


def test_classify_falls_back_to_client_label():
    kind, name = classify("Nowa rezerwacja", "Klient: Ewa Lis\nTelefon: 500 600 700")

    assert kind == "new"
    assert name == "Ewa Lis"


def test_classify_strips_forward_prefixes():
    kind, name = classify("RE: Fwd: Jan Nowak: odwołał rezerwację", "")

    assert kind == "cancel"
    assert name == "Jan Nowak"


def test_month_lookup_ignores_case_and_diacritics():
    assert month_number("Października") == 10
    assert month_number("pazdziernika") == 10
    assert month_number("May") == 5


def test_extract_phone_variants():
    assert extract_phone("tel. 123456789") == "123456789"
    assert extract_phone("+48 123 456 789") == "123456789"
    assert extract_phone("48 123 456 789") == "123456789"
    assert extract_phone("order 1234567890") is None


def test_inline_service_before_price():
    service, price = extract_service_and_price(["Manicure hybrydowy - 90,00 zł"])

    assert service == "Manicure hybrydowy"
    assert price == Decimal("90.00")


def test_price_label_line_uses_block_above():
    service, price = extract_service_and_price(["Pedicure", "Cena: 150,00 zł"])

    assert service == "Pedicure"
    assert price == Decimal("150.00")


def test_staff_name_inline_and_next_line():
    assert extract_staff_name(["Pracownik: Kasia"]) == "Kasia"
    assert extract_staff_name(["Pracownik:", "", "Piotr Kowalski"]) == "Piotr Kowalski"
    assert extract_staff_name(["Haircut"]) is None


def test_parsed_event_survives_storage(new_booking_email):
    event = parse_event(*new_booking_email())

    restored = event_from_dict(event_to_dict(event))

    assert restored == event
