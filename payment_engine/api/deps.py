"""Request-scoped access to the objects created in the app lifespan."""

from fastapi import Request

from payment_engine.api.events import EventLog
from payment_engine.engine.service import PaymentService


def get_service(request: Request) -> PaymentService:
    return request.app.state.service


def get_events(request: Request) -> EventLog:
    return request.app.state.events
