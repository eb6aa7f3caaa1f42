"""
Per-user state: the selected payment method and in-flight submissions.

A UserContext is created lazily for the logged-in identity and torn down
completely on logout or user switch. Tearing it down is the service's job
(it must also fail the sessions listed here); this module only holds state.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from payment_engine.models.payment import PaymentMethodDescription

if TYPE_CHECKING:
    from payment_engine.engine.session import SubmissionSession

logger = logging.getLogger("payment_engine.user_context")

SelectionListener = Callable[[Optional[PaymentMethodDescription]], None]


class SelectedMethod:
    """Observable "currently selected payment method or None"."""

    def __init__(self) -> None:
        self._value: Optional[PaymentMethodDescription] = None
        self._listeners: list[SelectionListener] = []

    @property
    def value(self) -> Optional[PaymentMethodDescription]:
        return self._value

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, method: Optional[PaymentMethodDescription]) -> None:
        if method == self._value:
            return
        self._value = method
        for listener in list(self._listeners):
            try:
                listener(method)
            except Exception:
                logger.exception("Selection listener failed")


class UserContext:
    """State scoped to one logged-in identity."""

    def __init__(self, identity: Optional[str]):
        self.identity = identity
        self.selected_method: Optional[PaymentMethodDescription] = None
        self.sessions: dict[str, "SubmissionSession"] = {}
        self.created_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        self.selected_method = None
        self.sessions.clear()
