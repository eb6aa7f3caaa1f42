"""Shared test fixtures."""

import asyncio
from typing import Callable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payment_engine.engine.correlator import CallbackCorrelator
from payment_engine.engine.service import PaymentService
from payment_engine.gateway.base import GatewayClient
from payment_engine.models.enums import PaymentRequestStatus
from payment_engine.models.payment import (
    InteractionEvent,
    PaymentMethodDescription,
    PaymentRequest,
)
from payment_engine.models.records import Base


@pytest_asyncio.fixture
async def db_session_factory():
    """Fresh in-memory database shared by every session the factory opens."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def correlator():
    return CallbackCorrelator(scheme="payments", token_param="token")


@pytest.fixture
def card_method():
    return PaymentMethodDescription(
        method_type="card",
        masked_identifier="**** 4242",
        label="Visa",
        reference="pm_card_4242",
    )


@pytest.fixture
def make_request():
    def _make(**overrides) -> PaymentRequest:
        fields = {
            "amount_minor": 1999,
            "currency": "PLN",
            "order_reference": "ORD-001",
            "payment_method_reference": "pm_card_4242",
            "payment_method_type": "card",
        }
        fields.update(overrides)
        return PaymentRequest(**fields)

    return _make


@pytest.fixture
def make_service():
    def _make(gateway: GatewayClient, **kwargs) -> PaymentService:
        return PaymentService(gateway, **kwargs)

    return _make


class Recorder:
    """Collects host notifications."""

    def __init__(self) -> None:
        self.interactions: list[InteractionEvent] = []
        self.completions: list[tuple[PaymentRequestStatus, Optional[Exception]]] = []
        self._queue: asyncio.Queue = asyncio.Queue()

    def on_interaction(self, event: InteractionEvent) -> None:
        self.interactions.append(event)
        self._queue.put_nowait(event)

    def on_complete(self, status: PaymentRequestStatus, error: Optional[Exception]) -> None:
        self.completions.append((status, error))

    async def next_interaction(self, timeout: float = 1.0) -> InteractionEvent:
        return await asyncio.wait_for(self._queue.get(), timeout)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def until():
    """Poll the event loop until a condition holds."""

    async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async def _poll():
            while not predicate():
                await asyncio.sleep(0)

        await asyncio.wait_for(_poll(), timeout)

    return _until
