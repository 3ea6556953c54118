"""
Entity resolution - maps free-text names from notifications to salon records.

"Not found" is a normal outcome here (``None``), never an exception: the
reconciliation service turns it into a pending-queue entry.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Client, Service, StaffMember
from .repository import DirectoryRepository
from .text_normalizer import fold_diacritics

logger = logging.getLogger(__name__)

# Staff match scores
EXACT_NAME = 3
CONTAINS_NAME = 2
SHARED_TOKEN = 1
NO_MATCH = 0


def score_staff_member(query: str, member: StaffMember) -> int:
    """Score how well a folded query names a staff member"""
    if not query:
        return NO_MATCH

    first = fold_diacritics(member.first_name or "")
    last = fold_diacritics(member.last_name or "")
    full = fold_diacritics(member.full_name)

    if query in {first, last, full} - {""}:
        return EXACT_NAME
    if full and (query in full or full in query):
        return CONTAINS_NAME
    if set(query.split()) & set(full.split()):
        return SHARED_TOKEN
    return NO_MATCH


class EntityResolver:
    """Resolves clients, staff and services within one salon"""

    def __init__(self, db: Session, salon_id: int):
        self.db = db
        self.salon_id = salon_id
        self.repo = DirectoryRepository()

    def resolve_client(
        self, phone: str, name: str, email: Optional[str] = None
    ) -> tuple[Client, bool]:
        """
        Find the client by exact phone number, creating one when absent.

        Returns (client, created).
        """
        existing = self.repo.get_client_by_phone(self.db, self.salon_id, phone)
        if existing:
            return existing, False

        client = self.repo.create_client(
            self.db,
            self.salon_id,
            client_code=self.repo.next_client_code(self.db, self.salon_id),
            full_name=" ".join((name or "").split()) or phone,
            phone=phone,
            email=email,
        )
        logger.info(f"👤 Created client {client.client_code} for salon {self.salon_id}")
        return client, True

    def resolve_staff(self, name: Optional[str]) -> Optional[StaffMember]:
        """
        Best-scoring staff member for ``name``.

        Exact full/first/last name beats substring containment, which beats a
        shared token; ties go to active staff, then to the lowest id. Without
        any match the salon's only active staff member is used, if there is
        exactly one.
        """
        staff = self.repo.list_staff(self.db, self.salon_id)
        query = fold_diacritics(name or "")

        best: Optional[StaffMember] = None
        best_key = (NO_MATCH, False)
        for member in staff:
            key = (score_staff_member(query, member), bool(member.active))
            if key[0] > NO_MATCH and key > best_key:
                best, best_key = member, key

        if best is not None:
            return best

        active = [member for member in staff if member.active]
        if len(active) == 1:
            logger.info(
                f"👥 No staff match for {name!r}, using the only active staff member {active[0].id}"
            )
            return active[0]

        return None

    def resolve_service(self, name: Optional[str]) -> Optional[Service]:
        """
        First active service matched by, in order: case-insensitive equality,
        equality without diacritics, service name containing the parsed name,
        parsed name containing the service name.
        """
        if not name or not name.strip():
            return None

        services = self.repo.list_active_services(self.db, self.salon_id)
        lowered = " ".join(name.casefold().split())
        folded = fold_diacritics(name)
        folded_services = [(service, fold_diacritics(service.name)) for service in services]

        strategies = (
            lambda service, svc: " ".join(service.name.casefold().split()) == lowered,
            lambda service, svc: svc == folded,
            lambda service, svc: bool(svc) and folded in svc,
            lambda service, svc: bool(svc) and svc in folded,
        )
        for matches in strategies:
            for service, svc in folded_services:
                if matches(service, svc):
                    return service

        return None

    def staff_by_id(self, staff_id: int) -> Optional[StaffMember]:
        return self.repo.get_staff_member(self.db, self.salon_id, staff_id)

    def service_by_id(self, service_id: int) -> Optional[Service]:
        return self.repo.get_service(self.db, self.salon_id, service_id)
