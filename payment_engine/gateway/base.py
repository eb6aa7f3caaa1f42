"""
Abstract payment gateway interface.

The gateway decides whether a submission succeeds, fails, or needs more
authorization (CVV entry, 3-D Secure, bank login). Real adapters wrap the
gateway's HTTP API; the engine only depends on this contract.
"""

from abc import ABC, abstractmethod
from typing import Optional

from payment_engine.models.payment import (
    ContinuationData,
    GatewayOutcome,
    PaymentMethodDescription,
    PaymentRequest,
)


class GatewayClient(ABC):
    """Abstract base class for gateway clients."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'mock_gateway')."""
        ...

    @abstractmethod
    async def submit(self, request: PaymentRequest) -> GatewayOutcome:
        """
        Submit a payment request.

        Raises:
            TransportError: On network failure or timeout (maps to RETRY).
            GatewayRejected: On permanent denial (maps to FAILURE).
        """
        ...

    @abstractmethod
    async def continue_authorization(self, continuation: ContinuationData) -> GatewayOutcome:
        """
        Continue a submission after the user completed an interaction step.

        Raises the same errors as submit().
        """
        ...

    async def fetch_selected_method(self) -> Optional[PaymentMethodDescription]:
        """Previously selected payment method for the current user, if any."""
        return None
