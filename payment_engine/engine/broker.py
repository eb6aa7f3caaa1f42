"""
Interaction broker: classifies a gateway outcome.

Rules, in priority order:
  1. Outcome is explicitly final        -> terminal
  2. Outcome carries a redirect target  -> ExternalRedirect
  3. Outcome carries an in-process form -> PresentController

The presentation style of an in-process step depends only on whether the
host's rendering context is inside a navigation hierarchy. Unknown means
modal-standalone. No hidden state: same outcome, same answer.
"""

from typing import Optional, Union

from payment_engine.engine.errors import GatewayRejected, MalformedOutcome, PaymentError
from payment_engine.models.enums import PaymentRequestStatus, PresentationStyle
from payment_engine.models.payment import GatewayOutcome, InteractionRequest, TerminalOutcome


def presentation_style_for(inside_navigation: Optional[bool]) -> PresentationStyle:
    if inside_navigation:
        return PresentationStyle.INSIDE_NAVIGATION_CONTROLLER
    return PresentationStyle.OUTSIDE_NAVIGATION_CONTROLLER


def classify(
    outcome: GatewayOutcome,
    inside_navigation: Optional[bool] = None,
) -> Union[InteractionRequest, TerminalOutcome]:
    """
    Decide whether an outcome ends the session or needs a user step.

    Args:
        outcome: Result of a gateway submit/continue call.
        inside_navigation: Host rendering context, declared at registration.

    Returns:
        TerminalOutcome or the InteractionRequest to surface.

    Raises:
        MalformedOutcome: If the outcome matches none of the rules, or a
            redirect has no correlation token.
    """
    if outcome.final_status is not None:
        return TerminalOutcome(
            status=outcome.final_status,
            error=_error_for_final(outcome),
            transaction_id=outcome.transaction_id,
        )

    if outcome.redirect_target:
        if not outcome.correlation_token:
            raise MalformedOutcome("External redirect without a correlation token")
        return InteractionRequest.external_redirect(
            target=outcome.redirect_target,
            token=outcome.correlation_token,
        )

    if outcome.challenge_payload is not None:
        return InteractionRequest.present_controller(
            payload=outcome.challenge_payload,
            presentation_style=presentation_style_for(inside_navigation),
        )

    raise MalformedOutcome("Gateway outcome is neither final nor an interaction request")


def _error_for_final(outcome: GatewayOutcome) -> Optional[Exception]:
    if outcome.final_status == PaymentRequestStatus.FAILURE:
        return GatewayRejected(outcome.message or "Payment declined by gateway", code="declined")
    if outcome.final_status == PaymentRequestStatus.RETRY:
        return PaymentError(outcome.message or "Gateway asked to retry", retryable=True)
    return None
