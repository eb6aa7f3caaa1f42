"""
External redirect callbacks.

POST /callbacks — Forward a URL the host app was asked to open (3-D Secure,
bank login return). Unrelated URLs are answered with handled=false.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payment_engine.api.deps import get_events, get_service
from payment_engine.api.events import EventLog
from payment_engine.config import settings
from payment_engine.engine.service import PaymentService

router = APIRouter(prefix="/callbacks", tags=["callbacks"])


class CallbackBody(BaseModel):
    url: str


class CallbackResponse(BaseModel):
    handled: bool
    submission_id: Optional[str] = None


@router.post("", response_model=CallbackResponse)
async def handle_callback(
    body: CallbackBody,
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    submission_id = service.route_callback(body.url)
    if submission_id is not None:
        # Matching moved the session to RESUBMITTING; wait for what comes next.
        log = events.track(submission_id)
        await log.wait_for(len(log.events) + 1, settings.api_event_wait_seconds)
    return CallbackResponse(handled=submission_id is not None, submission_id=submission_id)
