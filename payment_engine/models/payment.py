"""
Value types exchanged between the host, the engine and the gateway.

All of them are frozen: a payment method description is replaced wholesale
when the selection changes, and a request is never modified after submit.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from payment_engine.models.enums import InteractionKind, PaymentRequestStatus, PresentationStyle


@dataclass(frozen=True)
class PaymentMethodDescription:
    """Display-safe description of a stored payment method."""

    method_type: str  # e.g. "card", "card_3ds", "pbl"
    masked_identifier: str  # e.g. "**** 4242"
    label: str
    reference: str  # Opaque token the gateway charges against


@dataclass(frozen=True)
class PaymentRequest:
    """A transaction to submit."""

    amount_minor: int  # Amount in smallest currency unit
    currency: str  # ISO 4217
    order_reference: str
    payment_method_reference: Optional[str] = None
    payment_method_type: Optional[str] = None
    description: str = ""
    merchant_context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContinuationData:
    """Data handed back to the gateway to continue authorization."""

    submission_id: str
    source: str  # "in_process" or "callback"
    params: dict[str, Any] = field(default_factory=dict)
    token: Optional[str] = None


@dataclass(frozen=True)
class GatewayOutcome:
    """
    Structured result of a gateway call.

    Exactly one of the three shapes is expected; build outcomes with the
    constructors below rather than by hand.
    """

    final_status: Optional[PaymentRequestStatus] = None
    redirect_target: Optional[str] = None
    correlation_token: Optional[str] = None
    challenge_payload: Optional[dict[str, Any]] = None
    message: str = ""
    transaction_id: Optional[str] = None

    @classmethod
    def terminal(
        cls,
        status: PaymentRequestStatus,
        message: str = "",
        transaction_id: Optional[str] = None,
    ) -> "GatewayOutcome":
        return cls(final_status=status, message=message, transaction_id=transaction_id)

    @classmethod
    def present_controller(cls, payload: dict[str, Any]) -> "GatewayOutcome":
        return cls(challenge_payload=payload)

    @classmethod
    def external_redirect(cls, target: str, token: str) -> "GatewayOutcome":
        return cls(redirect_target=target, correlation_token=token)


@dataclass(frozen=True)
class InteractionRequest:
    """A user step the host must perform before the payment can continue."""

    kind: InteractionKind
    payload: Optional[dict[str, Any]] = None
    presentation_style: Optional[PresentationStyle] = None
    target: Optional[str] = None
    token: Optional[str] = None

    @classmethod
    def present_controller(
        cls,
        payload: dict[str, Any],
        presentation_style: PresentationStyle = PresentationStyle.OUTSIDE_NAVIGATION_CONTROLLER,
    ) -> "InteractionRequest":
        return cls(
            kind=InteractionKind.PRESENT_CONTROLLER,
            payload=payload,
            presentation_style=presentation_style,
        )

    @classmethod
    def external_redirect(cls, target: str, token: str) -> "InteractionRequest":
        return cls(kind=InteractionKind.EXTERNAL_REDIRECT, target=target, token=token)

    @property
    def is_external(self) -> bool:
        return self.kind == InteractionKind.EXTERNAL_REDIRECT


@dataclass(frozen=True)
class TerminalOutcome:
    """A final status, with the error that produced it if any."""

    status: PaymentRequestStatus
    error: Optional[Exception] = None
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class InteractionEvent:
    submission_id: Optional[str]  # None for method selection outside a submission
    interaction: InteractionRequest


@dataclass(frozen=True)
class CompletionEvent:
    submission_id: str
    status: PaymentRequestStatus
    error: Optional[Exception] = None
    transaction_id: Optional[str] = None
