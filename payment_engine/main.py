"""
Payment Engine — payment submission and authorization API.

Submits payment requests to a gateway and drives the authorization
protocol (CVV forms, 3-D Secure, bank login redirects) until each request
reaches exactly one terminal status: success, retry or failure.

Start the server:
    uvicorn payment_engine.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from payment_engine.api.callbacks import router as callbacks_router
from payment_engine.api.context import router as context_router
from payment_engine.api.events import EventLog
from payment_engine.api.health import router as health_router
from payment_engine.api.payments import router as payments_router
from payment_engine.audit.logger import AuditTrail
from payment_engine.config import settings
from payment_engine.database import async_session, init_db
from payment_engine.engine.service import PaymentService
from payment_engine.gateway.mock_gateway import MockGateway

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and the payment service on startup."""
    await init_db()
    audit = AuditTrail(async_session)
    service = PaymentService(MockGateway(), audit=audit)
    events = EventLog()
    events.attach(service)

    app.state.service = service
    app.state.events = events
    yield

    service.clear_user_context()
    await audit.flush()


app = FastAPI(
    title="Payment Engine",
    description=(
        "Payment submission engine that resolves multi-step authorization "
        "(additional data entry, 3-D Secure, bank login) with exactly-once "
        "terminal statuses and an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(payments_router, prefix="/api")
app.include_router(callbacks_router, prefix="/api")
app.include_router(context_router, prefix="/api")
