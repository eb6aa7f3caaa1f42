"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from payment_engine.api.deps import get_service
from payment_engine.engine.service import PaymentService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(service: PaymentService = Depends(get_service)):
    return {
        "status": "ok",
        "active_submissions": len(service.active_sessions),
        "pending_callbacks": service.correlator.pending_count(),
    }
