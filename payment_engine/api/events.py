"""
Buffered session events for HTTP hosts.

HTTP clients cannot receive callbacks, so the API records every
notification a submission produces and lets handlers wait (bounded) for
the next one before responding.
"""

import asyncio
import logging
from collections import OrderedDict, deque
from typing import Any, Optional

from payment_engine.config import settings
from payment_engine.engine.service import PaymentService
from payment_engine.models.enums import PaymentRequestStatus
from payment_engine.models.payment import InteractionEvent

logger = logging.getLogger("payment_engine.api.events")

SELECTION_REQUEST_LIMIT = 20


def _interaction_dict(event: InteractionEvent) -> dict[str, Any]:
    interaction = event.interaction
    return {
        "type": "interaction",
        "kind": interaction.kind.value,
        "payload": interaction.payload,
        "presentation_style": interaction.presentation_style.value
        if interaction.presentation_style else None,
        "target": interaction.target,
        "token": interaction.token,
    }


class SessionLog:
    """Everything one submission told the host so far."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        self.events: list[dict[str, Any]] = []
        self.status: Optional[PaymentRequestStatus] = None
        self.error: Optional[str] = None
        self._changed = asyncio.Event()

    def append(self, event: dict[str, Any]) -> None:
        self.events.append(event)
        self._changed.set()

    async def wait_for(self, count: int, timeout: float) -> None:
        """Wait until at least `count` events exist or the session completed."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.events) < count and self.status is None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return


class EventLog:
    """
    Per-submission event buffers plus payment-method-list requests.

    Logs of active submissions are kept until they complete. Finished logs
    stay readable until `finished_limit` newer ones push them out.
    """

    def __init__(self, finished_limit: Optional[int] = None) -> None:
        self._finished_limit = (
            finished_limit if finished_limit is not None else settings.api_finished_log_limit
        )
        self._active: dict[str, SessionLog] = {}
        self._finished: OrderedDict[str, SessionLog] = OrderedDict()
        self.selection_requests: deque[dict[str, Any]] = deque(maxlen=SELECTION_REQUEST_LIMIT)

    def attach(self, service: PaymentService) -> None:
        service.add_presentation_listener(self.on_interaction)

    def get(self, submission_id: str) -> Optional[SessionLog]:
        return self._active.get(submission_id) or self._finished.get(submission_id)

    def track(self, submission_id: str) -> SessionLog:
        log = self.get(submission_id)
        if log is None:
            log = self._active[submission_id] = SessionLog(submission_id)
        return log

    def on_interaction(self, event: InteractionEvent) -> None:
        if event.submission_id is None:
            self.selection_requests.append(_interaction_dict(event))
            return
        self.track(event.submission_id).append(_interaction_dict(event))

    def on_complete(
        self,
        submission_id: str,
        status: PaymentRequestStatus,
        error: Optional[Exception],
    ) -> None:
        log = self.track(submission_id)
        log.status = status
        log.error = str(error) if error else None
        log.append({
            "type": "completion",
            "status": status.value,
            "error": log.error,
            "error_type": type(error).__name__ if error else None,
        })

        self._active.pop(submission_id, None)
        self._finished[submission_id] = log
        while len(self._finished) > self._finished_limit:
            evicted, _ = self._finished.popitem(last=False)
            logger.debug("Evicted event log of finished submission %s", evicted)
