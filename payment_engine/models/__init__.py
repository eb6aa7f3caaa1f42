from payment_engine.models.enums import (
    InteractionKind,
    PaymentRequestStatus,
    PresentationStyle,
    RejectReason,
    SessionState,
)
from payment_engine.models.payment import (
    CompletionEvent,
    ContinuationData,
    GatewayOutcome,
    InteractionEvent,
    InteractionRequest,
    PaymentMethodDescription,
    PaymentRequest,
    TerminalOutcome,
)
from payment_engine.models.records import AuditLog, Base, Submission

__all__ = [
    "Base",
    "Submission",
    "AuditLog",
    "InteractionKind",
    "PaymentRequestStatus",
    "PresentationStyle",
    "RejectReason",
    "SessionState",
    "CompletionEvent",
    "ContinuationData",
    "GatewayOutcome",
    "InteractionEvent",
    "InteractionRequest",
    "PaymentMethodDescription",
    "PaymentRequest",
    "TerminalOutcome",
]
