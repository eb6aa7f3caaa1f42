"""
Payment method selection and user context endpoints.

GET    /payment-method              — Currently selected method (or null).
PUT    /payment-method              — User picked a method.
DELETE /payment-method              — User cleared the selection.
POST   /payment-method/present      — Ask the host to show the methods list.
POST   /user-context/clear          — Logout / user switch.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payment_engine.api.deps import get_events, get_service
from payment_engine.api.events import EventLog
from payment_engine.engine.service import PaymentService
from payment_engine.models.payment import PaymentMethodDescription

router = APIRouter(tags=["user-context"])


class PaymentMethodBody(BaseModel):
    method_type: str
    masked_identifier: str
    label: str
    reference: str


class SelectedMethodResponse(BaseModel):
    method: Optional[PaymentMethodBody] = None


class ClearContextResponse(BaseModel):
    terminated: int


def _to_response(method: Optional[PaymentMethodDescription]) -> SelectedMethodResponse:
    if method is None:
        return SelectedMethodResponse()
    return SelectedMethodResponse(method=PaymentMethodBody(
        method_type=method.method_type,
        masked_identifier=method.masked_identifier,
        label=method.label,
        reference=method.reference,
    ))


@router.get("/payment-method", response_model=SelectedMethodResponse)
async def get_selected_method(service: PaymentService = Depends(get_service)):
    return _to_response(await service.load_selected_method())


@router.put("/payment-method", response_model=SelectedMethodResponse)
async def select_method(body: PaymentMethodBody, service: PaymentService = Depends(get_service)):
    service.select_method(PaymentMethodDescription(**body.model_dump()))
    return _to_response(service.selected_method.value)


@router.delete("/payment-method", response_model=SelectedMethodResponse)
async def clear_selection(service: PaymentService = Depends(get_service)):
    service.clear_selection()
    return _to_response(None)


@router.post("/payment-method/present")
async def present_method_list(
    service: PaymentService = Depends(get_service),
    events: EventLog = Depends(get_events),
):
    service.request_method_selection()
    return {"requested": True, "presentation": events.selection_requests[-1] if events.selection_requests else None}


@router.post("/user-context/clear", response_model=ClearContextResponse)
async def clear_user_context(service: PaymentService = Depends(get_service)):
    """Clear everything tied to the current user. In-flight submissions end with FAILURE."""
    return ClearContextResponse(terminated=service.clear_user_context())
