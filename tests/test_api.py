"""HTTP tests for the host bridge API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payment_engine.api.events import SELECTION_REQUEST_LIMIT, EventLog
from payment_engine.audit.logger import AuditTrail
from payment_engine.database import get_session
from payment_engine.engine.service import PaymentService
from payment_engine.gateway.mock_gateway import MockGateway
from payment_engine.main import app
from payment_engine.models.enums import PaymentRequestStatus
from payment_engine.models.payment import InteractionEvent, InteractionRequest

PAYMENT = {
    "amount_minor": 4999,
    "currency": "PLN",
    "order_reference": "ORD-API-1",
    "payment_method_reference": "pm_card_4242",
    "payment_method_type": "card",
}

METHOD = {
    "method_type": "card_3ds",
    "masked_identifier": "**** 1111",
    "label": "Mastercard",
    "reference": "pm_card_1111",
}


@pytest_asyncio.fixture
async def api(db_session_factory):
    audit = AuditTrail(db_session_factory)
    service = PaymentService(MockGateway(latency_ms=0, failure_rate=0.0), audit=audit)
    events = EventLog()
    events.attach(service)
    app.state.service = service
    app.state.events = events

    async def override_get_session():
        async with db_session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, service, audit
    service.clear_user_context()
    await audit.flush()
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(api):
    client, _, _ = api
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


class TestPayments:
    @pytest.mark.asyncio
    async def test_card_payment_succeeds(self, api):
        client, _, _ = api
        resp = await client.post("/api/payments", json=PAYMENT)

        assert resp.status_code == 202
        body = resp.json()
        assert body["state"] == "terminal"
        assert body["status"] == "success"
        assert [e["type"] for e in body["events"]] == ["completion"]

    @pytest.mark.asyncio
    async def test_redirect_flow(self, api):
        client, _, _ = api
        resp = await client.post("/api/payments", json={**PAYMENT, "payment_method_type": "card_3ds"})
        body = resp.json()
        assert body["state"] == "awaiting_interaction"
        interaction = body["events"][0]
        assert interaction["kind"] == "external_redirect"

        callback = await client.post(
            "/api/callbacks",
            json={"url": f"payments://authorize?token={interaction['token']}"},
        )
        assert callback.json() == {"handled": True, "submission_id": body["submission_id"]}

        resp = await client.get(f"/api/payments/{body['submission_id']}")
        assert resp.json()["status"] == "success"

        again = await client.post(
            "/api/callbacks",
            json={"url": f"payments://authorize?token={interaction['token']}"},
        )
        assert again.json()["handled"] is False

    @pytest.mark.asyncio
    async def test_in_process_flow(self, api):
        client, _, _ = api
        body = (await client.post("/api/payments", json={**PAYMENT, "payment_method_type": "card_cvv"})).json()
        interaction = body["events"][0]
        assert interaction["kind"] == "present_controller"
        assert interaction["presentation_style"] == "modal-standalone"

        resp = await client.post(
            f"/api/payments/{body['submission_id']}/interaction",
            json={"params": {"cvv": "123"}},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"

    @pytest.mark.asyncio
    async def test_interaction_on_redirect_step_conflicts(self, api):
        client, _, _ = api
        body = (await client.post("/api/payments", json={**PAYMENT, "payment_method_type": "pbl"})).json()

        resp = await client.post(f"/api/payments/{body['submission_id']}/interaction", json={})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel(self, api):
        client, _, _ = api
        body = (await client.post("/api/payments", json={**PAYMENT, "payment_method_type": "card_3ds"})).json()

        resp = await client.post(f"/api/payments/{body['submission_id']}/cancel")
        assert resp.json()["cancelled"] is True

        view = (await client.get(f"/api/payments/{body['submission_id']}")).json()
        assert view["state"] == "terminal"
        assert view["status"] == "failure"
        assert view["events"][-1]["error_type"] == "CancelledByHost"

        resp = await client.post(f"/api/payments/{body['submission_id']}/cancel")
        assert resp.json()["cancelled"] is False

    @pytest.mark.asyncio
    async def test_invalid_request_fails(self, api):
        client, _, _ = api
        body = (await client.post("/api/payments", json={**PAYMENT, "currency": "zl"})).json()
        assert body["status"] == "failure"
        assert body["events"][0]["error_type"] == "InvalidPaymentRequest"

    @pytest.mark.asyncio
    async def test_unknown_submission(self, api):
        client, _, _ = api
        assert (await client.get("/api/payments/nope")).status_code == 404
        assert (await client.post("/api/payments/nope/cancel")).status_code == 404

    @pytest.mark.asyncio
    async def test_trace(self, api):
        client, _, audit = api
        body = (await client.post("/api/payments", json=PAYMENT)).json()
        await audit.flush()

        resp = await client.get(f"/api/payments/{body['submission_id']}/trace")
        assert resp.status_code == 200
        trace = resp.json()
        assert trace["status"] == "success"
        assert [entry["action"] for entry in trace["audit_trail"]] == ["submitted", "completed"]


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_unrelated_url(self, api):
        client, _, _ = api
        resp = await client.post("/api/callbacks", json={"url": "https://example.com/deep-link"})
        assert resp.json() == {"handled": False, "submission_id": None}


class TestUserContext:
    @pytest.mark.asyncio
    async def test_select_and_clear_method(self, api):
        client, service, _ = api
        assert (await client.get("/api/payment-method")).json() == {"method": None}

        resp = await client.put("/api/payment-method", json=METHOD)
        assert resp.json()["method"]["reference"] == "pm_card_1111"
        assert service.selected_method.value.reference == "pm_card_1111"

        resp = await client.delete("/api/payment-method")
        assert resp.json() == {"method": None}

    @pytest.mark.asyncio
    async def test_selected_method_used_for_payment(self, api):
        client, _, _ = api
        await client.put("/api/payment-method", json=METHOD)

        payment = {k: v for k, v in PAYMENT.items() if not k.startswith("payment_method")}
        body = (await client.post("/api/payments", json=payment)).json()
        assert body["events"][0]["kind"] == "external_redirect"

    @pytest.mark.asyncio
    async def test_present_method_list(self, api):
        client, _, _ = api
        resp = await client.post("/api/payment-method/present")
        assert resp.json()["presentation"]["payload"] == {"screen": "payment_methods"}

    @pytest.mark.asyncio
    async def test_clear_context_terminates_sessions(self, api):
        client, _, _ = api
        body = (await client.post("/api/payments", json={**PAYMENT, "payment_method_type": "card_3ds"})).json()

        resp = await client.post("/api/user-context/clear")
        assert resp.json() == {"terminated": 1}

        view = (await client.get(f"/api/payments/{body['submission_id']}")).json()
        assert view["status"] == "failure"
        assert view["events"][-1]["error_type"] == "UserContextCleared"


class TestEventLog:
    def test_finished_logs_are_evicted_oldest_first(self):
        events = EventLog(finished_limit=2)
        for submission_id in ("sub-1", "sub-2", "sub-3"):
            events.track(submission_id)
            events.on_complete(submission_id, PaymentRequestStatus.SUCCESS, None)

        assert events.get("sub-1") is None
        assert events.get("sub-2").status == PaymentRequestStatus.SUCCESS
        assert events.get("sub-3").status == PaymentRequestStatus.SUCCESS

    def test_active_logs_are_kept(self):
        events = EventLog(finished_limit=1)
        active = events.track("sub-active")
        for submission_id in ("sub-1", "sub-2"):
            events.on_complete(submission_id, PaymentRequestStatus.FAILURE, None)

        assert events.get("sub-active") is active
        assert events.get("sub-1") is None

    def test_selection_requests_are_bounded(self):
        events = EventLog()
        interaction = InteractionRequest.present_controller({"screen": "payment_methods"})
        for _ in range(SELECTION_REQUEST_LIMIT + 5):
            events.on_interaction(InteractionEvent(submission_id=None, interaction=interaction))

        assert len(events.selection_requests) == SELECTION_REQUEST_LIMIT
