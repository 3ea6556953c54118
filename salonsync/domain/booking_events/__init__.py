"""
Booking events domain - reconciles booking-platform notifications with the booking ledger

Pipeline: text_normalizer -> parser -> resolver -> mutator, orchestrated by
service.ReconciliationService, with pending_queue holding events an operator
has to finish by hand.
"""

from .router import router, webhook_router
from .service import ProcessResult, ReconciliationService

__all__ = ["router", "webhook_router", "ProcessResult", "ReconciliationService"]
