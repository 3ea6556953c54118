"""Booking event router - webhook intake and pending-queue operator endpoints"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...config import BOOKING_EVENTS_WEBHOOK_SECRET
from ...database import get_db
from ...models import Booking, PendingBookingEvent
from ...webhook_security import verify_shared_secret_webhook
from .pending_queue import STATUSES, PendingTransitionError
from .repository import DirectoryRepository
from .schemas import (
    BookingEmailResult,
    BookingLogEntry,
    BookingLogsResponse,
    BookingResponse,
    BookingStatsResponse,
    BookingWebhookPayload,
    BookingWebhookResponse,
    PendingAssignRequest,
    PendingAssignResponse,
    PendingEventResponse,
    PendingStatusUpdate,
)
from .service import ReconciliationService

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks/booking-events", tags=["booking-events-webhooks"])
router = APIRouter(prefix="/salons/{salon_id}/booking-events", tags=["Booking Events"])


def get_webhook_secret() -> Optional[str]:
    """Dependency injection for the webhook shared secret"""
    return BOOKING_EVENTS_WEBHOOK_SECRET


def get_reconciliation_service(salon_id: int, db: Session = Depends(get_db)) -> ReconciliationService:
    """Dependency injection for ReconciliationService, 404 for unknown salons"""
    if DirectoryRepository.get_salon(db, salon_id) is None:
        raise HTTPException(status_code=404, detail="Salon not found")
    return ReconciliationService(db, salon_id)


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        clientId=booking.client_id,
        staffId=booking.staff_id,
        serviceId=booking.service_id,
        bookingDate=booking.booking_date,
        bookingTime=booking.booking_time,
        durationMinutes=booking.duration_minutes,
        basePrice=booking.base_price,
        status=booking.status,
        source=booking.source,
        notes=booking.notes,
    )


def _log_entry(booking: Booking) -> BookingLogEntry:
    client = booking.client
    return BookingLogEntry(
        id=booking.id,
        bookingDate=booking.booking_date,
        bookingTime=booking.booking_time,
        status=booking.status,
        basePrice=booking.base_price,
        createdAt=booking.created_at,
        clientName=client.full_name if client else None,
        clientPhone=client.phone if client else None,
        staffName=booking.staff_member.full_name if booking.staff_member else None,
        serviceName=booking.service.name if booking.service else None,
    )


def _pending_response(record: PendingBookingEvent) -> PendingEventResponse:
    return PendingEventResponse(
        id=record.id,
        messageId=record.message_id,
        subject=record.subject,
        bodySnippet=record.body_snippet,
        parsedData=record.parsed_data,
        failureReason=record.failure_reason,
        failureDetail=record.failure_detail,
        status=record.status,
        createdAt=record.created_at,
        resolvedAt=record.resolved_at,
    )


# ============================================================================
# WEBHOOK INTAKE
# ============================================================================


@webhook_router.post("", response_model=BookingWebhookResponse)
async def handle_booking_events_webhook(
    request: Request,
    db: Session = Depends(get_db),
    webhook_secret: Optional[str] = Depends(get_webhook_secret),
):
    """
    Receive booking-platform notifications forwarded by the mailbox poller.

    Security:
    - Shared secret in X-Booking-Webhook-Secret or Authorization: Bearer
    - Constant-time secret comparison

    Every email is processed independently; pending (queued) emails count as
    successful so automated senders do not retry them. The envelope is always
    successful once the batch ran; per-email failures show up in ``errors``.
    """
    if not webhook_secret:
        logger.error("❌ BOOKING_EVENTS_WEBHOOK_SECRET not configured - rejecting webhook")
        return JSONResponse(
            status_code=500, content={"error": "BOOKING_EVENTS_WEBHOOK_SECRET is not configured"}
        )

    is_valid, body = await verify_shared_secret_webhook(request, webhook_secret)
    if not is_valid:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        raw_payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

    try:
        payload = BookingWebhookPayload.model_validate(raw_payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid webhook payload",
                "details": json.loads(e.json(include_url=False)),
            },
        )

    try:
        if DirectoryRepository.get_salon(db, payload.salonId) is None:
            return JSONResponse(status_code=404, content={"error": "Salon not found"})

        logger.info(f"📥 Received {len(payload.emails)} booking email(s) for salon {payload.salonId}")

        service = ReconciliationService(db, payload.salonId)
        results = []
        for email in payload.emails:
            result = service.process_event(
                email.subject,
                email.body,
                idempotency_marker=email.idempotencyKey,
                message_id=email.id,
            )
            results.append(BookingEmailResult(emailId=email.id, **result.to_dict()))

        successful = sum(1 for r in results if r.success)
        pending = sum(1 for r in results if r.pending)
        errors = len(results) - successful

        logger.info(
            f"✅ Booking webhook processed: {successful}/{len(results)} successful, "
            f"{pending} pending, {errors} errors"
        )
        return BookingWebhookResponse(
            success=True,
            processed=len(results),
            successful=successful,
            pending=pending,
            errors=errors,
            results=results,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Booking webhook processing error: {str(e)}")
        logger.exception("Full webhook error traceback:")
        raise HTTPException(status_code=500, detail=str(e)) from e


# ============================================================================
# PENDING QUEUE
# ============================================================================


@router.get("/pending", response_model=list[PendingEventResponse])
async def list_pending_events(
    status: str = Query("pending"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """List queued events, newest first (status: pending, resolved, ignored or all)"""
    if status != "all" and status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    return [_pending_response(r) for r in service.pending_queue.list_events(status)]


@router.get("/pending/{pending_id}", response_model=PendingEventResponse)
async def get_pending_event(
    pending_id: int,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    record = service.pending_queue.get(pending_id)
    if not record:
        raise HTTPException(status_code=404, detail="Pending event not found")
    return _pending_response(record)


@router.patch("/pending/{pending_id}", response_model=PendingEventResponse)
async def update_pending_event_status(
    pending_id: int,
    data: PendingStatusUpdate,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Mark a queued event resolved or ignored by hand"""
    try:
        record = service.pending_queue.mark(pending_id, data.status)
    except PendingTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not record:
        raise HTTPException(status_code=404, detail="Pending event not found")
    return _pending_response(record)


@router.post("/pending/{pending_id}/assign", response_model=PendingAssignResponse)
async def assign_pending_event(
    pending_id: int,
    data: PendingAssignRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Create the booking for a queued new-booking event with operator-chosen staff/service"""
    result = service.assign_pending(pending_id, staff_id=data.staffId, service_id=data.serviceId)

    if result.failure_reason == "not_found":
        raise HTTPException(status_code=404, detail=result.error)
    if result.status != "done":
        raise HTTPException(status_code=400, detail=result.error)

    return PendingAssignResponse(
        success=True,
        booking=_booking_response(result.booking),
        deduplicated=result.deduplicated,
    )


# ============================================================================
# LEDGER OVERVIEW
# ============================================================================


@router.get("/stats", response_model=BookingStatsResponse)
async def get_booking_event_stats(service: ReconciliationService = Depends(get_reconciliation_service)):
    """Counts of bookings written from booking events"""
    return BookingStatsResponse(source=service.source, **service.booking_stats())


@router.get("/logs", response_model=BookingLogsResponse)
async def get_booking_event_logs(
    limit: int = Query(20, ge=1, le=100),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Most recent bookings written from booking events, newest first"""
    return BookingLogsResponse(bookings=[_log_entry(b) for b in service.recent_bookings(limit)])
