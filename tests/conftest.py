import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salonsync import models  # noqa: F401
from salonsync.database import Base
from salonsync.models import Salon, Service, StaffMember


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def salon(db):
    salon = Salon(name="Studio Anna", slug="studio-anna")
    db.add(salon)
    db.commit()
    db.refresh(salon)
    return salon


@pytest.fixture
def staff(db, salon):
    members = {
        "piotr": StaffMember(salon_id=salon.id, first_name="Piotr", last_name="Kowalski"),
        "kasia": StaffMember(salon_id=salon.id, first_name="Kasia", last_name="Nowicka"),
        "marek": StaffMember(salon_id=salon.id, first_name="Marek", last_name="Zieliński", active=False),
    }
    db.add_all(members.values())
    db.commit()
    for member in members.values():
        db.refresh(member)
    return members


@pytest.fixture
def services(db, salon):
    items = {
        "haircut": Service(salon_id=salon.id, name="Haircut", duration_minutes=60, price=Decimal("80.00")),
        "strzyzenie": Service(
            salon_id=salon.id, name="Strzyżenie damskie", duration_minutes=45, price=Decimal("120.00")
        ),
        "koloryzacja": Service(
            salon_id=salon.id, name="Koloryzacja", duration_minutes=None, price=Decimal("250.00")
        ),
        "retired": Service(salon_id=salon.id, name="Old service", duration_minutes=30, active=False),
    }
    db.add_all(items.values())
    db.commit()
    for item in items.values():
        db.refresh(item)
    return items


@pytest.fixture
def new_booking_email():
    """Builds (subject, body) of a Polish new-booking notification"""

    def _build(
        name="Jan Nowak",
        phone="48 123 456 789",
        email="jan.nowak@example.com",
        service="Haircut",
        price="80,00 zł",
        when="25 października 2024, 14:00 - 14:45",
        staff="Kowalski",
    ):
        lines = [name, phone]
        if email:
            lines.append(email)
        lines.append("")
        if service:
            lines.append(service)
        if price:
            lines.append(price)
        lines += ["", when, ""]
        if staff:
            lines += ["Pracownik:", staff]
        return f"{name}: nowa rezerwacja", "\n".join(lines)

    return _build


@pytest.fixture
def reschedule_email():
    def _build(
        name="Jan Nowak",
        old="25 października 2024, 14:00 - 14:45",
        new="26 października 2024, 15:30 - 16:15",
    ):
        body = f"{name} zmienił rezerwację\n\nz dnia {old}\nna {new}\n"
        return f"{name}: zmienił rezerwację", body

    return _build


@pytest.fixture
def cancel_email():
    def _build(name="Jan Nowak", when="26 października 2024, 15:30 - 16:15"):
        body = f"{name} odwołał rezerwację\n\n{when}\n"
        return f"{name}: odwołał rezerwację", body

    return _build
