"""API tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from conftest import ORDER_ID
from api.server import create_app
from core.audit.events import AuditEventType
from core.config import Settings


def invoice_payload(price: str = "2.60", invoice_number: str = "INV-1001") -> dict:
    return {
        "invoice_number": invoice_number,
        "vendor_name": "BuildASoil Organics",
        "line_items": [
            {"sku": "SKU-100", "description": "Worm castings 1 cu ft bag", "quantity": "100", "unit_price": price},
        ],
        "total": f"${float(price) * 100:,.2f}",
    }


@pytest.fixture
def client(engine):
    app = create_app(engine=engine, settings=Settings())
    with TestClient(app) as test_client:
        yield test_client


def escalate(client) -> str:
    response = client.post("/reconciliations", json={"invoice": invoice_payload("2.68"), "order_id": ORDER_ID})
    assert response.status_code == 200
    body = response.json()
    assert body["result"]["overall_verdict"] == "needs_approval"
    return body["approval_id"]


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["inventory"] == "up"
        assert body["services"]["pending_approvals"] == "0"

    def test_health_degraded_when_inventory_down(self, client, connector):
        connector.fail_on("test_connection", ConnectionError("unreachable"))
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["services"]["inventory"] == "down"

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert set(body) >= {"reconciliations", "applies", "approvals", "fail_open", "timings"}


class TestReconciliations:

    def test_preview_does_not_write(self, client, connector, audit_backend):
        response = client.post(
            "/reconciliations/preview",
            json={"invoice": invoice_payload("2.65"), "order_id": ORDER_ID},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["overall_verdict"] == "auto_approve"
        assert body["auto_applicable"] is True
        assert connector.writes == []
        assert audit_backend.events == []

    def test_process_auto_applies(self, client, connector):
        response = client.post("/reconciliations", json={"invoice": invoice_payload("2.65"), "order_id": ORDER_ID})
        assert response.status_code == 200
        body = response.json()
        assert body["approval_id"] is None
        assert body["apply_result"]["applied"] == ["SKU-100: $2.60 -> $2.65"]
        assert len(connector.writes) == 1

    def test_invalid_invoice_is_422(self, client):
        payload = invoice_payload()
        payload["line_items"][0]["unit_price"] = "two dollars"
        response = client.post("/reconciliations", json={"invoice": payload, "order_id": ORDER_ID})
        assert response.status_code == 422


class TestApprovals:

    def test_list_and_get(self, client):
        approval_id = escalate(client)

        listed = client.get("/approvals").json()
        assert [a["id"] for a in listed] == [approval_id]
        assert listed[0]["status"] == "pending"

        entry = client.get(f"/approvals/{approval_id}").json()
        assert entry["result"]["order_id"] == ORDER_ID

    def test_get_unknown_is_404(self, client):
        assert client.get("/approvals/recon_missing").status_code == 404

    def test_approve(self, client, connector, audit_backend):
        approval_id = escalate(client)

        response = client.post(f"/approvals/{approval_id}/approve", json={"actor": "ops@example.com"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == f"Applied 1 change(s) to PO {ORDER_ID}."
        assert body["reply"].splitlines()[1] == "  + SKU-100: $2.60 -> $2.68"
        assert audit_backend.events[-1].actor == "ops@example.com"
        assert client.get("/approvals").json() == []

    def test_second_decision_is_409(self, client):
        approval_id = escalate(client)
        client.post(f"/approvals/{approval_id}/reject")

        response = client.post(f"/approvals/{approval_id}/approve")
        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Already rejected."

    def test_unknown_decision_is_409(self, client):
        response = client.post("/approvals/recon_missing/reject")
        assert response.status_code == 409
        assert response.json()["message"] == "Approval not found or expired."

    def test_expired_approval_is_hidden_then_logged_on_decision(self, client, clock, audit_backend):
        approval_id = escalate(client)
        clock.advance(hours=25)

        assert client.get("/approvals").json() == []
        assert client.get(f"/approvals/{approval_id}").status_code == 404

        response = client.post(f"/approvals/{approval_id}/approve")
        assert response.status_code == 409
        assert response.json()["message"] == "Approval not found or expired."
        expired = [e for e in audit_backend.events if e.event_type == AuditEventType.APPROVAL_EXPIRED.value]
        assert [e.approval_id for e in expired] == [approval_id]
