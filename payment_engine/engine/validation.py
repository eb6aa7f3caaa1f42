"""
Request validation with categorized reject reasons.

Before a request reaches the gateway, we verify:
  1. Order reference is present
  2. A payment method is referenced
  3. Amount is positive
  4. Currency is a three-letter ISO 4217 code

Each check returns a structured result so the session can fail the
request with a specific reason without a gateway round-trip.
"""

from dataclasses import dataclass
from typing import Optional

from payment_engine.models.enums import RejectReason
from payment_engine.models.payment import PaymentRequest


@dataclass
class ValidationResult:
    """Result of validating a payment request."""

    valid: bool
    reason: Optional[RejectReason] = None
    message: str = ""


def check_request(request: PaymentRequest) -> ValidationResult:
    """
    Check whether a payment request can be submitted.

    Args:
        request: The request as it will be sent, with the payment method
            already resolved from the user context if the host left it out.

    Returns:
        ValidationResult indicating pass/fail with categorized reason.
    """
    if not (request.order_reference or "").strip():
        return ValidationResult(
            valid=False,
            reason=RejectReason.MISSING_ORDER_REFERENCE,
            message="Missing order reference",
        )

    if not request.payment_method_reference:
        return ValidationResult(
            valid=False,
            reason=RejectReason.MISSING_PAYMENT_METHOD,
            message="No payment method selected",
        )

    if request.amount_minor is None or request.amount_minor <= 0:
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_AMOUNT,
            message=f"Invalid amount: {request.amount_minor}",
        )

    currency = request.currency or ""
    if len(currency) != 3 or not currency.isalpha() or not currency.isupper():
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_CURRENCY,
            message=f"Invalid currency: {request.currency}",
        )

    return ValidationResult(valid=True)
