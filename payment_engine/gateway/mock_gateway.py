"""
Mock payment gateway for demonstration and tests.

Two modes:
  - Scripted: a queue of outcomes (or exceptions to raise) consumed in
    call order, shared by submit() and continue_authorization().
  - Behavioral: the outcome follows the payment method type, with
    configurable latency and random transient/permanent failures.

Behavioral method types:
  - "card"      -> immediate success
  - "card_cvv"  -> in-process CVV form, then success
  - "card_3ds"  -> external 3-D Secure redirect, then success
  - "pbl"       -> external bank login redirect, then success
"""

import asyncio
import random
import uuid
from typing import Optional, Union

from payment_engine.config import settings
from payment_engine.engine.errors import GatewayRejected, TransportError
from payment_engine.gateway.auth import AuthorizationDataSource
from payment_engine.gateway.base import GatewayClient
from payment_engine.models.enums import PaymentRequestStatus
from payment_engine.models.payment import (
    ContinuationData,
    GatewayOutcome,
    PaymentMethodDescription,
    PaymentRequest,
)

ScriptItem = Union[GatewayOutcome, Exception]

REDIRECT_BASE = "https://mock-gateway.local"


class MockGateway(GatewayClient):
    """Unified mock gateway covering card, CVV, 3-D Secure and bank-login flows."""

    def __init__(
        self,
        script: Optional[list[ScriptItem]] = None,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        data_source: Optional[AuthorizationDataSource] = None,
        selected_method: Optional[PaymentMethodDescription] = None,
    ):
        self._script = list(script) if script is not None else None
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._data_source = data_source
        self._selected_method = selected_method
        self.calls: list[tuple[str, Union[PaymentRequest, ContinuationData]]] = []

    @property
    def name(self) -> str:
        return "mock_gateway"

    async def submit(self, request: PaymentRequest) -> GatewayOutcome:
        self.calls.append(("submit", request))
        await self._simulate_network()

        if self._script is not None:
            return self._next_scripted()

        method_type = request.payment_method_type or "card"
        if method_type == "card_cvv":
            return GatewayOutcome.present_controller({
                "form": "cvv",
                "order_reference": request.order_reference,
            })
        if method_type in ("card_3ds", "pbl"):
            token = uuid.uuid4().hex
            step = "3ds" if method_type == "card_3ds" else "bank-login"
            return GatewayOutcome.external_redirect(
                target=f"{REDIRECT_BASE}/{step}/{token}",
                token=token,
            )

        return self._authorized(request.order_reference)

    async def continue_authorization(self, continuation: ContinuationData) -> GatewayOutcome:
        self.calls.append(("continue_authorization", continuation))
        await self._simulate_network()

        if self._script is not None:
            return self._next_scripted()

        if continuation.params.get("result") == "declined":
            raise GatewayRejected("Mock permanent error: authorization declined", code="declined")

        return self._authorized(continuation.submission_id)

    async def fetch_selected_method(self) -> Optional[PaymentMethodDescription]:
        await self._simulate_network()
        return self._selected_method

    def _authorized(self, reference: str) -> GatewayOutcome:
        return GatewayOutcome.terminal(
            PaymentRequestStatus.SUCCESS,
            message=f"Payment authorized ({reference})",
            transaction_id=f"tx_{uuid.uuid4().hex[:16]}",
        )

    def _next_scripted(self) -> GatewayOutcome:
        if not self._script:
            raise TransportError("Mock script exhausted", status_code=503)
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def _simulate_network(self) -> None:
        if self._data_source is not None:
            token = await self._data_source.authorization_token()
            if not token:
                raise GatewayRejected("Missing authorization token", code="unauthorized")

        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        roll = random.random()

        if roll < self._failure_rate * 0.6:
            # Transient error (retryable)
            raise TransportError(
                "Mock transient error: service temporarily unavailable",
                status_code=503,
            )

        if roll < self._failure_rate:
            raise GatewayRejected("Mock permanent error: card declined", code="declined")
