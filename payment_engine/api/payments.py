"""
Payment submission endpoints.

POST /payments                      — Submit a payment request.
GET  /payments/{id}                 — Current state and every event so far.
POST /payments/{id}/interaction     — Report an in-process step as completed.
POST /payments/{id}/cancel          — Cancel a submission.
GET  /payments/{id}/trace           — Full audit trail for a submission.
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payment_engine.api.deps import get_events, get_service
from payment_engine.api.events import EventLog, SessionLog
from payment_engine.config import settings
from payment_engine.database import get_session
from payment_engine.engine.errors import ProtocolViolation
from payment_engine.engine.service import PaymentService
from payment_engine.models.enums import SessionState
from payment_engine.models.payment import PaymentRequest
from payment_engine.models.records import AuditLog, Submission

router = APIRouter(prefix="/payments", tags=["payments"])


class PaymentRequestBody(BaseModel):
    amount_minor: int
    currency: str
    order_reference: str
    payment_method_reference: Optional[str] = None
    payment_method_type: Optional[str] = None
    description: str = ""
    merchant_context: dict[str, Any] = Field(default_factory=dict)


class InteractionResult(BaseModel):
    params: dict[str, Any] = Field(default_factory=dict)


class SubmissionView(BaseModel):
    submission_id: str
    state: str
    status: Optional[str] = None
    error: Optional[str] = None
    events: list[dict[str, Any]]


class CancelResponse(BaseModel):
    submission_id: str
    cancelled: bool


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class SubmissionTrace(BaseModel):
    submission_id: str
    state: str
    status: Optional[str]
    audit_trail: list[AuditEntry]


def _to_view(service: PaymentService, log: SessionLog) -> SubmissionView:
    session = service.get_session(log.submission_id)
    if session is not None:
        state = session.state.value
    elif log.status is not None:
        state = SessionState.TERMINAL.value
    else:
        state = SessionState.CREATED.value
    return SubmissionView(
        submission_id=log.submission_id,
        state=state,
        status=log.status.value if log.status else None,
        error=log.error,
        events=list(log.events),
    )


def _require_log(events: EventLog, submission_id: str) -> SessionLog:
    log = events.get(submission_id)
    if log is None:
        raise HTTPException(status_code=404, detail=f"Submission not found: {submission_id}")
    return log


@router.post("", response_model=SubmissionView, status_code=202)
async def submit_payment(
    body: PaymentRequestBody,
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    """
    Submit a payment request.

    Waits briefly for the first event (an interaction request or the final
    status) so most clients get something actionable in the response.
    """
    request = PaymentRequest(**body.model_dump())
    subscription = service.submit(
        request,
        on_complete=lambda status, error: events.on_complete(subscription.submission_id, status, error),
    )
    log = events.track(subscription.submission_id)
    await log.wait_for(1, settings.api_event_wait_seconds)
    return _to_view(service, log)


@router.get("/{submission_id}", response_model=SubmissionView)
async def get_payment(
    submission_id: str,
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    return _to_view(service, _require_log(events, submission_id))


@router.post("/{submission_id}/interaction", response_model=SubmissionView)
async def complete_interaction(
    submission_id: str,
    body: InteractionResult,
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    """Report that the user finished the in-process step (CVV, form, challenge)."""
    log = _require_log(events, submission_id)
    session = service.get_session(submission_id)
    if session is None:
        raise HTTPException(status_code=409, detail=f"Submission already completed: {submission_id}")

    seen = len(log.events)
    try:
        session.complete_interaction(body.params)
    except ProtocolViolation as e:
        raise HTTPException(status_code=409, detail=str(e))

    await log.wait_for(seen + 1, settings.api_event_wait_seconds)
    return _to_view(service, log)


@router.post("/{submission_id}/cancel", response_model=CancelResponse)
async def cancel_payment(
    submission_id: str,
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    _require_log(events, submission_id)
    session = service.get_session(submission_id)
    cancelled = session.cancel() if session is not None else False
    return CancelResponse(submission_id=submission_id, cancelled=cancelled)


@router.get("/{submission_id}/trace", response_model=SubmissionTrace)
async def get_payment_trace(submission_id: str, session: AsyncSession = Depends(get_session)):
    """
    Full audit trail for a submission.

    Returns every recorded transition, ordered chronologically. Useful for
    debugging declined payments and stuck authorizations.
    """
    submission = await session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail=f"Submission not found: {submission_id}")

    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.submission_id == submission_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )

    audit_trail = []
    for log in result.scalars().all():
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            details=details,
            timestamp=log.timestamp.isoformat() if log.timestamp else None,
        ))

    return SubmissionTrace(
        submission_id=submission.id,
        state=submission.state,
        status=submission.status,
        audit_trail=audit_trail,
    )
