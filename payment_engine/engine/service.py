"""
Payment service: the host-facing facade.

Creates one SubmissionSession per submitted request and wires it to the
gateway, the callback correlator and the user context. Hosts talk to it
through four seams:

  - submit()                   -> completion handler + presentation listeners
  - handle_external_callback() -> from the host's "open URL" entry point
  - clear_user_context()       -> on logout / user switch
  - selected_method            -> observable for the payment method widget

submit() and the deprecated submit_payment_request() differ only in where
interaction requests are delivered; both open the same kind of session.
Use the service from the event loop thread; handle_external_callback() may
also be called from other threads.
"""

import logging
import warnings
from dataclasses import replace
from typing import Any, Callable, Optional

from payment_engine.audit.logger import AuditTrail
from payment_engine.config import settings
from payment_engine.engine.broker import presentation_style_for
from payment_engine.engine.correlator import CallbackCorrelator, NoMatch
from payment_engine.engine.errors import UserContextCleared
from payment_engine.engine.session import SubmissionSession
from payment_engine.engine.user_context import SelectedMethod, SelectionListener, UserContext
from payment_engine.gateway.auth import AuthorizationDataSource
from payment_engine.gateway.base import GatewayClient
from payment_engine.models.enums import PaymentRequestStatus, SessionState
from payment_engine.models.payment import (
    CompletionEvent,
    InteractionEvent,
    InteractionRequest,
    PaymentMethodDescription,
    PaymentRequest,
)

logger = logging.getLogger("payment_engine.service")

CompletionHandler = Callable[[PaymentRequestStatus, Optional[Exception]], None]
PresentationHandler = Callable[[InteractionRequest], None]
PresentationListener = Callable[[InteractionEvent], None]

PAYMENT_METHODS_SCREEN = {"screen": "payment_methods"}


class Subscription:
    """Handle on one submitted request."""

    def __init__(self, session: SubmissionSession):
        self._session = session

    @property
    def submission_id(self) -> str:
        return self._session.id

    @property
    def state(self) -> SessionState:
        return self._session.state

    def complete_interaction(self, params: Optional[dict[str, Any]] = None) -> None:
        self._session.complete_interaction(params)

    def cancel(self) -> bool:
        return self._session.cancel()

    async def wait(self) -> CompletionEvent:
        return await self._session.wait()


class PaymentService:
    """Manages payment method selection and payment submission for the current user."""

    def __init__(
        self,
        gateway: GatewayClient,
        data_source: Optional[AuthorizationDataSource] = None,
        correlator: Optional[CallbackCorrelator] = None,
        audit: Optional[AuditTrail] = None,
        inside_navigation: Optional[bool] = None,
        max_interaction_rounds: Optional[int] = None,
        interaction_timeout: Optional[float] = None,
    ):
        self._gateway = gateway
        self._data_source = data_source
        self._correlator = correlator or CallbackCorrelator(
            settings.callback_scheme,
            settings.callback_token_param,
        )
        self._audit = audit
        self._inside_navigation = (
            inside_navigation if inside_navigation is not None else settings.inside_navigation
        )
        self._max_rounds = max_interaction_rounds
        self._timeout = interaction_timeout

        self._context: Optional[UserContext] = None
        self._sessions: dict[str, SubmissionSession] = {}
        self._presentation_listeners: list[PresentationListener] = []
        self.selected_method = SelectedMethod()

    @property
    def correlator(self) -> CallbackCorrelator:
        return self._correlator

    # ─── Listeners ──────────────────────────────────────────────────────

    def add_presentation_listener(self, listener: PresentationListener) -> Callable[[], None]:
        """
        Register for "present this UI" requests.

        The surfaced step must be presented modally; it can't be pushed onto
        a navigation stack. Returns a callable that unregisters the listener.
        """
        self._presentation_listeners.append(listener)

        def remove() -> None:
            if listener in self._presentation_listeners:
                self._presentation_listeners.remove(listener)

        return remove

    def add_selection_listener(self, listener: SelectionListener) -> Callable[[], None]:
        """Register for selected-method changes (select, load, clear)."""
        return self.selected_method.subscribe(listener)

    # ─── Submission ─────────────────────────────────────────────────────

    def submit(
        self,
        request: PaymentRequest,
        on_complete: Optional[CompletionHandler] = None,
    ) -> Subscription:
        """
        Submit a payment request.

        Returns immediately. Interaction requests go to the presentation
        listeners; on_complete is called exactly once with (status, error).
        """
        return self._open_session(request, on_complete, self._broadcast)

    def submit_payment_request(
        self,
        request: PaymentRequest,
        completion_handler: CompletionHandler,
        presentation_handler: PresentationHandler,
    ) -> Subscription:
        """Deprecated: interaction requests go to presentation_handler, which may be called several times."""
        warnings.warn(
            "submit_payment_request() is deprecated; use submit() with add_presentation_listener()",
            DeprecationWarning,
            stacklevel=2,
        )
        return self._open_session(
            request,
            completion_handler,
            lambda event: presentation_handler(event.interaction),
        )

    def _open_session(
        self,
        request: PaymentRequest,
        on_complete: Optional[CompletionHandler],
        on_interaction: Callable[[InteractionEvent], None],
    ) -> Subscription:
        context = self._ensure_context()
        request = self._with_selected_method(request, context)

        session = SubmissionSession(
            request,
            self._gateway,
            self._correlator,
            inside_navigation=self._inside_navigation,
            max_interaction_rounds=self._max_rounds,
            interaction_timeout=self._timeout,
            audit=self._audit,
        )
        self._sessions[session.id] = session
        context.sessions[session.id] = session

        session.add_listener(on_complete=lambda event: self._forget(context, event))
        session.add_listener(
            on_interaction=on_interaction,
            on_complete=(lambda event: on_complete(event.status, event.error)) if on_complete else None,
        )
        session.start()

        logger.info(
            "Opened submission %s for order %s (%d active)",
            session.id,
            request.order_reference,
            len(self._sessions),
        )
        return Subscription(session)

    def _with_selected_method(self, request: PaymentRequest, context: UserContext) -> PaymentRequest:
        method = context.selected_method
        if request.payment_method_reference or method is None:
            return request
        return replace(
            request,
            payment_method_reference=method.reference,
            payment_method_type=request.payment_method_type or method.method_type,
        )

    def _forget(self, context: UserContext, event: CompletionEvent) -> None:
        self._sessions.pop(event.submission_id, None)
        context.sessions.pop(event.submission_id, None)

    def _broadcast(self, event: InteractionEvent) -> None:
        if not self._presentation_listeners:
            logger.warning(
                "Submission %s needs %s but no presentation listener is registered",
                event.submission_id,
                event.interaction.kind.value,
            )
        for listener in list(self._presentation_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Presentation listener failed")

    def get_session(self, submission_id: str) -> Optional[SubmissionSession]:
        """Active (non-terminal) session by id."""
        return self._sessions.get(submission_id)

    @property
    def active_sessions(self) -> list[SubmissionSession]:
        return list(self._sessions.values())

    # ─── External callbacks ─────────────────────────────────────────────

    def handle_external_callback(self, url: str) -> bool:
        """
        Forward a URL the host application was asked to open.

        Returns False for URLs that are not payment callbacks or whose token
        is not pending (late, duplicate, or for a cancelled submission).
        Safe to call from any thread; the session resumes on its own loop.
        """
        return self.route_callback(url) is not None

    def route_callback(self, url: str) -> Optional[str]:
        """Like handle_external_callback(), returning the matched submission id."""
        result = self._correlator.match(url)
        if isinstance(result, NoMatch):
            logger.debug("Callback not handled: %s", result.error)
            return None
        logger.info("Callback matched submission %s", result.submission_id)
        return result.submission_id

    # ─── User context ───────────────────────────────────────────────────

    @property
    def user_context(self) -> UserContext:
        return self._ensure_context()

    def _ensure_context(self) -> UserContext:
        identity = self._data_source.identity() if self._data_source is not None else None
        if self._context is not None and self._context.identity != identity:
            logger.info("User changed; clearing context of previous user")
            self.clear_user_context()
        if self._context is None:
            self._context = UserContext(identity)
        return self._context

    def clear_user_context(self) -> int:
        """
        Drop all data of the current user.

        Every submission still in flight under the old context ends with
        FAILURE / UserContextCleared, and its pending callback token is
        invalidated. Returns the number of submissions terminated.
        """
        context = self._context
        self._context = None
        if context is None:
            self.selected_method.set(None)
            return 0

        terminated = 0
        for session in list(context.sessions.values()):
            if session.abort(UserContextCleared()):
                terminated += 1
        context.clear()
        self.selected_method.set(None)

        logger.info("Cleared user context (%d submissions terminated)", terminated)
        return terminated

    # ─── Payment method selection ───────────────────────────────────────

    def select_method(self, method: PaymentMethodDescription) -> None:
        """The user picked a payment method."""
        self._ensure_context().selected_method = method
        self.selected_method.set(method)

    def clear_selection(self) -> None:
        """The user cleared or deleted the selected payment method."""
        self._ensure_context().selected_method = None
        self.selected_method.set(None)

    async def load_selected_method(self) -> Optional[PaymentMethodDescription]:
        """Load the previously selected method from the gateway into the user context."""
        context = self._ensure_context()
        if context.selected_method is None:
            method = await self._gateway.fetch_selected_method()
            if method is not None and self._context is context:
                self.select_method(method)
        return self.selected_method.value

    async def retrieve_selected_method(self) -> Optional[PaymentMethodDescription]:
        """Deprecated: observe selected_method instead."""
        warnings.warn(
            "retrieve_selected_method() is deprecated; use selected_method / add_selection_listener()",
            DeprecationWarning,
            stacklevel=2,
        )
        return await self.load_selected_method()

    def request_method_selection(self) -> None:
        """Ask presentation listeners to show the payment methods list (widget tapped)."""
        interaction = InteractionRequest.present_controller(
            dict(PAYMENT_METHODS_SCREEN),
            presentation_style=presentation_style_for(self._inside_navigation),
        )
        self._broadcast(InteractionEvent(submission_id=None, interaction=interaction))
