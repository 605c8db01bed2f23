import pytest
from fastapi.testclient import TestClient

from guardian.api.dependencies import get_orchestrator
from guardian.main import app
from guardian.services.profile_store import ProfileStore
from guardian.services.risk_orchestrator import RiskOrchestrator
from guardian.services.risk_scorer import DEFAULT_WEIGHTS


@pytest.fixture
def client(fake_redis, static_signal):
    orchestrator = RiskOrchestrator(
        profile_store   = ProfileStore(fake_redis),
        providers       = [static_signal(name, 0.2) for name in DEFAULT_WEIGHTS],
        hmac_secret     = "api-test-secret",
        update_profiles = False,
    )
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    # Sin context manager: el lifespan (Redis, PostgreSQL) no corre
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_analyze_returns_signed_decision(client, payload):
    response = client.post("/v1/risk/analyze", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["transaction_id"] == "tx-0001"
    assert body["decision"]["score"] == pytest.approx(0.2)
    assert body["decision"]["level"] == "LOW"
    assert body["decision"]["action"] == "ALLOW"
    assert body["failsafe"] is False
    assert list(body["signals"]) == list(DEFAULT_WEIGHTS)
    assert len(body["signature"]) == 64


def test_invalid_transaction_returns_422(client, payload):
    response = client.post(
        "/v1/risk/analyze", json={**payload, "amount": 0, "currency": "US"}
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Solicitud de transacción inválida."
    assert {tuple(d["loc"]) for d in body["details"]} == {("amount",), ("currency",)}


def test_missing_body_fields_return_422(client):
    response = client.post("/v1/risk/analyze", json={"transaction_id": "tx-1"})
    assert response.status_code == 422
    assert "details" in response.json()


def test_health_reports_degraded_redis_without_connection(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["redis"] == "degraded"
