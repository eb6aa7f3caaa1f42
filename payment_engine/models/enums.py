"""Enumerations for the payment engine domain model."""

from enum import Enum


class PaymentRequestStatus(str, Enum):
    """Terminal outcome of a submitted payment request."""

    SUCCESS = "success"
    RETRY = "retry"  # Transient failure, safe to resubmit
    FAILURE = "failure"  # Non-retryable


class SessionState(str, Enum):
    """Lifecycle states for a submission session."""

    CREATED = "created"
    SUBMITTING = "submitting"
    AWAITING_INTERACTION = "awaiting_interaction"
    RESUBMITTING = "resubmitting"
    TERMINAL = "terminal"


class InteractionKind(str, Enum):
    """Kinds of user interaction a gateway may require."""

    PRESENT_CONTROLLER = "present_controller"
    EXTERNAL_REDIRECT = "external_redirect"


class PresentationStyle(str, Enum):
    """
    How the host must show an in-process step.

    Both styles are modal. Pushing the surfaced view onto a navigation
    stack is never allowed.
    """

    INSIDE_NAVIGATION_CONTROLLER = "modal-over-navigation"
    OUTSIDE_NAVIGATION_CONTROLLER = "modal-standalone"


class RejectReason(str, Enum):
    """Categorized reasons for rejecting a request before submission."""

    MISSING_ORDER_REFERENCE = "missing_order_reference"
    MISSING_PAYMENT_METHOD = "missing_payment_method"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_CURRENCY = "invalid_currency"
