"""
Error taxonomy for payment submission.

Transport failures and permanent gateway rejections never escape a
session: they are converted into RETRY and FAILURE terminal statuses.
Protocol violations are host bugs and are raised to the caller.
"""

from typing import Optional

from payment_engine.models.enums import PaymentRequestStatus


class PaymentError(Exception):
    """Base exception for payment submission errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class TransportError(PaymentError):
    """Network failure or timeout talking to the gateway."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, retryable=True)
        self.status_code = status_code


class GatewayRejected(PaymentError):
    """Explicit, permanent denial from the gateway."""

    def __init__(self, message: str, code: str = "rejected"):
        super().__init__(message, retryable=False)
        self.code = code


class MalformedOutcome(GatewayRejected):
    """Gateway returned an outcome that cannot be classified."""

    def __init__(self, message: str):
        super().__init__(message, code="malformed_outcome")


class InvalidPaymentRequest(PaymentError):
    """Request failed local validation and was never sent."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message, retryable=False)
        self.reason = reason


class ProtocolViolation(PaymentError):
    """Host called an operation that is invalid in the current state."""


class SessionTerminated(ProtocolViolation):
    """Operation attempted on a session that already reported its status."""


class CallbackMismatch(PaymentError):
    """Redirect callback did not match any pending correlation token."""


class CancelledByHost(PaymentError):
    """Host cancelled the submission."""

    def __init__(self, message: str = "Payment cancelled by host"):
        super().__init__(message, retryable=False)


class UserContextCleared(CancelledByHost):
    """User context was cleared (logout or user switch) mid-submission."""

    def __init__(self, message: str = "User context cleared"):
        super().__init__(message)


class InteractionTimeout(PaymentError):
    """No interaction result arrived within the bounded wait."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class InteractionLimitExceeded(PaymentError):
    """Gateway kept requesting interaction past the round cap."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


def status_for_error(error: Exception) -> PaymentRequestStatus:
    """Map an error to the terminal status the host should see."""
    if isinstance(error, PaymentError) and error.retryable:
        return PaymentRequestStatus.RETRY
    return PaymentRequestStatus.FAILURE
