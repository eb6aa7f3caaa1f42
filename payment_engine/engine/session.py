"""
Submission session: the per-request authorization state machine.

    CREATED -> SUBMITTING -> AWAITING_INTERACTION -> RESUBMITTING -> ... -> TERMINAL

One asyncio task drives every transition of a session, so gateway calls
for the same request never overlap. The host is told about each required
interaction and, exactly once, about the terminal status:

  - Transport errors end the session with RETRY, permanent gateway
    rejections with FAILURE. Neither escapes the session.
  - Protocol violations (host completing an interaction that is not
    pending, touching a finished session) are raised to the caller.
  - Interaction rounds and the wait for each round are bounded.
  - TERMINAL is absorbing. Listeners are dropped once it is reached.

Host operations must be called from the event loop the session runs on.
Redirect callbacks are the exception: the correlator may deliver them
from any thread, and they are handed over to the loop before any state
changes.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from payment_engine.audit.logger import AuditTrail, append_note
from payment_engine.config import settings
from payment_engine.engine.broker import classify
from payment_engine.engine.correlator import CallbackCorrelator, Matched
from payment_engine.engine.errors import (
    CancelledByHost,
    InteractionLimitExceeded,
    InteractionTimeout,
    InvalidPaymentRequest,
    MalformedOutcome,
    PaymentError,
    ProtocolViolation,
    SessionTerminated,
    status_for_error,
)
from payment_engine.engine.validation import check_request
from payment_engine.gateway.base import GatewayClient
from payment_engine.models.enums import PaymentRequestStatus, SessionState
from payment_engine.models.payment import (
    CompletionEvent,
    ContinuationData,
    GatewayOutcome,
    InteractionEvent,
    InteractionRequest,
    PaymentRequest,
    TerminalOutcome,
)

logger = logging.getLogger("payment_engine.session")

InteractionListener = Callable[[InteractionEvent], None]
CompletionListener = Callable[[CompletionEvent], None]

# Once continuation data has been accepted the gateway may already be
# charging; explicit cancellation is only honored before that point.
CANCELLABLE_STATES = (SessionState.CREATED, SessionState.AWAITING_INTERACTION)


class SubmissionSession:
    """State machine for one submitted payment request."""

    def __init__(
        self,
        request: PaymentRequest,
        gateway: GatewayClient,
        correlator: CallbackCorrelator,
        inside_navigation: Optional[bool] = None,
        max_interaction_rounds: Optional[int] = None,
        interaction_timeout: Optional[float] = None,
        audit: Optional[AuditTrail] = None,
        submission_id: Optional[str] = None,
    ):
        self.id = submission_id or uuid.uuid4().hex[:12]
        self.request = request
        self._gateway = gateway
        self._correlator = correlator
        self._inside_navigation = inside_navigation
        self._max_rounds = (
            max_interaction_rounds if max_interaction_rounds is not None else settings.max_interaction_rounds
        )
        self._timeout = (
            interaction_timeout if interaction_timeout is not None else settings.interaction_timeout_seconds
        )
        self._audit = audit

        self._state = SessionState.CREATED
        self._rounds = 0
        self._interaction: Optional[InteractionRequest] = None
        self._continuation: Optional[asyncio.Future] = None
        self._accepted: Optional[ContinuationData] = None
        self._token: Optional[str] = None
        self._result: Optional[CompletionEvent] = None
        self._done: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._interaction_listeners: list[InteractionListener] = []
        self._completion_listeners: list[CompletionListener] = []
        self.history: list[str] = []

    # ─── Inspection ─────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state == SessionState.TERMINAL

    @property
    def result(self) -> Optional[CompletionEvent]:
        return self._result

    @property
    def pending_interaction(self) -> Optional[InteractionRequest]:
        return self._interaction

    @property
    def interaction_rounds(self) -> int:
        return self._rounds

    def snapshot(self) -> dict[str, Any]:
        """Current column values for the audit store."""
        return {
            "id": self.id,
            "order_reference": self.request.order_reference,
            "amount_minor": self.request.amount_minor,
            "currency": self.request.currency,
            "payment_method_type": self.request.payment_method_type,
            "state": self._state.value,
            "status": self._result.status.value if self._result else None,
            "error": str(self._result.error) if self._result and self._result.error else None,
            "interaction_rounds": self._rounds,
            "transaction_id": self._result.transaction_id if self._result else None,
        }

    # ─── Host operations ────────────────────────────────────────────────

    def add_listener(
        self,
        on_interaction: Optional[InteractionListener] = None,
        on_complete: Optional[CompletionListener] = None,
    ) -> None:
        if self.is_terminal:
            raise SessionTerminated(f"Submission {self.id} already completed")
        if on_interaction is not None:
            self._interaction_listeners.append(on_interaction)
        if on_complete is not None:
            self._completion_listeners.append(on_complete)

    def start(self) -> None:
        """Begin submission. Returns immediately; progress is reported to listeners."""
        if self._done is not None:
            raise ProtocolViolation(f"Submission {self.id} already started")

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._done = loop.create_future()
        if self._result is not None:
            self._done.set_result(self._result)
            return
        self._task = loop.create_task(self._run(), name=f"submission-{self.id}")

    async def wait(self) -> CompletionEvent:
        """Wait for the terminal event."""
        if self._done is None:
            raise ProtocolViolation(f"Submission {self.id} not started")
        return await asyncio.shield(self._done)

    def complete_interaction(self, params: Optional[dict[str, Any]] = None) -> None:
        """
        Report that the user finished the in-process step.

        Raises:
            SessionTerminated: If the session already reported its status.
            ProtocolViolation: If no in-process step is pending.
        """
        if self.is_terminal:
            raise SessionTerminated(f"Submission {self.id} already completed")
        if self._state != SessionState.AWAITING_INTERACTION or self._interaction is None:
            raise ProtocolViolation(
                f"Submission {self.id} has no pending interaction (state={self._state.value})"
            )
        if self._interaction.is_external:
            raise ProtocolViolation(
                f"Submission {self.id} is waiting for an external redirect callback, "
                "not an in-process step"
            )

        self._resume(ContinuationData(
            submission_id=self.id,
            source="in_process",
            params=dict(params or {}),
        ))

    def cancel(self, error: Optional[CancelledByHost] = None) -> bool:
        """
        Cancel the submission on behalf of the host.

        Returns True if this call produced the terminal FAILURE, False if the
        session had already finished or already accepted continuation data.
        """
        if self._state not in CANCELLABLE_STATES:
            return False
        return self._finish(TerminalOutcome(PaymentRequestStatus.FAILURE, error or CancelledByHost()))

    def abort(self, error: PaymentError) -> bool:
        """Terminate from any non-terminal state, e.g. when the user context is cleared."""
        return self._finish(TerminalOutcome(status_for_error(error), error))

    # ─── State machine ──────────────────────────────────────────────────

    async def _run(self) -> None:
        if self.is_terminal:
            return

        check = check_request(self.request)
        if not check.valid:
            reason = check.reason.value if check.reason else None
            self._finish(TerminalOutcome(
                PaymentRequestStatus.FAILURE,
                InvalidPaymentRequest(check.message, reason=reason),
            ))
            return

        self._transition(SessionState.SUBMITTING, "submitted", {
            "order_reference": self.request.order_reference,
            "amount_minor": self.request.amount_minor,
            "currency": self.request.currency,
            "gateway": self._gateway.name,
        })
        outcome = await self._call_gateway(self._gateway.submit, self.request)

        while outcome is not None:
            try:
                decision = classify(outcome, self._inside_navigation)
            except PaymentError as e:
                self._finish(TerminalOutcome(status_for_error(e), e))
                return

            if isinstance(decision, TerminalOutcome):
                self._finish(decision)
                return

            continuation = await self._await_interaction(decision)
            if continuation is None or self.is_terminal:
                return

            outcome = await self._call_gateway(self._gateway.continue_authorization, continuation)

    async def _call_gateway(
        self,
        func: Callable[[Any], Awaitable[GatewayOutcome]],
        arg: Any,
    ) -> Optional[GatewayOutcome]:
        try:
            outcome = await func(arg)
        except PaymentError as e:
            logger.warning("Gateway call failed for submission %s: %s", self.id, e)
            self._finish(TerminalOutcome(status_for_error(e), e))
            return None
        except Exception as e:
            logger.exception("Unexpected gateway error for submission %s", self.id)
            self._finish(TerminalOutcome(PaymentRequestStatus.FAILURE, e))
            return None

        if self.is_terminal:
            logger.info("Discarding gateway outcome for finished submission %s", self.id)
            return None
        return outcome

    async def _await_interaction(self, interaction: InteractionRequest) -> Optional[ContinuationData]:
        if self._interaction is not None:
            raise ProtocolViolation(f"Submission {self.id} already has an outstanding interaction")

        self._rounds += 1
        if self._rounds > self._max_rounds:
            self._finish(TerminalOutcome(
                PaymentRequestStatus.RETRY,
                InteractionLimitExceeded(f"Gave up after {self._max_rounds} interaction rounds"),
            ))
            return None

        if interaction.is_external:
            try:
                self._correlator.register(interaction.token, self.id, self._on_callback)
            except ProtocolViolation as e:
                self._finish(TerminalOutcome(PaymentRequestStatus.FAILURE, MalformedOutcome(str(e))))
                return None
            self._token = interaction.token

        self._continuation = asyncio.get_running_loop().create_future()
        self._accepted = None
        self._interaction = interaction
        self._transition(SessionState.AWAITING_INTERACTION, "interaction_requested", {
            "kind": interaction.kind.value,
            "round": self._rounds,
            "presentation_style": interaction.presentation_style.value
            if interaction.presentation_style else None,
        })

        event = InteractionEvent(submission_id=self.id, interaction=interaction)
        for listener in list(self._interaction_listeners):
            self._notify(listener, event)

        try:
            return await asyncio.wait_for(self._continuation, timeout=self._timeout)
        except asyncio.TimeoutError:
            # The deadline cancelled the waiter, but a result accepted
            # before this task resumed still wins.
            if self._accepted is not None:
                return self._accepted
            self._finish(TerminalOutcome(
                PaymentRequestStatus.RETRY,
                InteractionTimeout(f"No interaction result within {self._timeout:.0f}s"),
            ))
            return None

    def _on_callback(self, matched: Matched) -> None:
        """Correlator handler. May run on any thread; the state change runs on the loop."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is not None and running is not self._loop:
            self._loop.call_soon_threadsafe(self._accept_callback, matched)
            return
        self._accept_callback(matched)

    def _accept_callback(self, matched: Matched) -> None:
        # The correlator already removed the token from its table.
        if self._state != SessionState.AWAITING_INTERACTION or self._token != matched.token:
            logger.info("Ignoring callback for submission %s in state %s", self.id, self._state.value)
            return
        self._token = None
        self._resume(ContinuationData(
            submission_id=self.id,
            source="callback",
            params=dict(matched.params),
            token=matched.token,
        ))

    def _resume(self, continuation: ContinuationData) -> None:
        self._interaction = None
        self._accepted = continuation
        self._transition(SessionState.RESUBMITTING, "interaction_completed", {
            "source": continuation.source,
            "round": self._rounds,
        })
        if self._continuation is not None and not self._continuation.done():
            self._continuation.set_result(continuation)

    def _finish(self, outcome: TerminalOutcome) -> bool:
        if self.is_terminal:
            return False

        if self._token is not None:
            self._correlator.deregister(self._token)
            self._token = None
        self._interaction = None

        self._result = CompletionEvent(
            submission_id=self.id,
            status=outcome.status,
            error=outcome.error,
            transaction_id=outcome.transaction_id,
        )
        self._transition(SessionState.TERMINAL, "completed", {
            "status": outcome.status.value,
            "error": str(outcome.error) if outcome.error else None,
            "error_type": type(outcome.error).__name__ if outcome.error else None,
            "rounds": self._rounds,
        })

        if self._continuation is not None and not self._continuation.done():
            self._continuation.set_result(None)

        listeners = self._completion_listeners
        self._interaction_listeners = []
        self._completion_listeners = []
        for listener in listeners:
            self._notify(listener, self._result)

        if self._done is not None and not self._done.done():
            self._done.set_result(self._result)
        return True

    def _transition(self, state: SessionState, action: str, details: dict[str, Any]) -> None:
        self._state = state
        self.history = append_note(self.history, f"{action}: {state.value}")
        logger.info("Submission %s -> %s (%s)", self.id, state.value, action)
        if self._audit is not None:
            try:
                self._audit.record(action, self.snapshot(), details)
            except Exception:
                logger.exception("Failed to record %s for submission %s", action, self.id)

    def _notify(self, listener: Callable[[Any], None], event: Any) -> None:
        try:
            listener(event)
        except Exception:
            logger.exception("Listener failed for submission %s", self.id)
