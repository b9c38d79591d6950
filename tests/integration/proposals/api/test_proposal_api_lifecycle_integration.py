import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers.proposals import get_proposal_service

ACCOUNT = "0x5b38Da6a701c568545dCfcB03FcB875f56beddC4"


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _connect(client):
    response = client.post("/session", json={"account_address": ACCOUNT})
    assert response.status_code == 200
    return response.json()


def test_proposal_endpoints_require_connected_session(client):
    assert client.get("/session").json()["connected"] is False
    assert client.get("/proposals").status_code == 401
    assert client.post("/proposals", json={"name": "X", "amount": 1}).status_code == 401
    assert client.get("/notifications/current").status_code == 401


def test_create_list_reveal_and_statistics_flow(client):
    session = _connect(client)
    assert session["connected"] is True
    assert session["proposal_count"] == 0

    created = client.post(
        "/proposals",
        json={"name": "DeFi Yield", "description": "vault", "amount": 100, "category": "defi"},
    )
    assert created.status_code == 200
    proposal_id = created.json()["proposal_id"]
    assert created.json()["proposal"]["is_verified"] is False
    client.post("/proposals", json={"name": "NFT Index", "amount": 50, "category": "nft"})

    listed = client.get("/proposals", params={"search": "DEFI", "category": "all"})
    assert listed.status_code == 200
    assert listed.json()["total"] == 1
    assert listed.json()["items"][0]["proposal_id"] == proposal_id

    revealed = client.post(f"/proposals/{proposal_id}/reveal")
    assert revealed.status_code == 200
    assert revealed.json() == {
        "proposal_id": proposal_id,
        "revealed_amount": 100,
        "is_verified": True,
    }

    stats = client.get("/proposals/statistics").json()
    assert stats["total_count"] == 2
    assert stats["total_public_value"] == 150
    assert stats["verified_count"] == 1
    assert stats["verified_ratio"] == pytest.approx(0.5)
    assert {share["category"] for share in stats["category_distribution"]} == {"defi", "nft"}

    notification = client.get("/notifications/current").json()["notification"]
    assert notification["kind"] == "SUCCESS"
    assert notification["message"] == "Decryption verified on ledger"

    activity = client.get("/proposals/activity").json()["items"]
    assert {item["proposal_id"] for item in activity} == {
        proposal_id,
        client.get("/proposals", params={"category": "nft"}).json()["items"][0]["proposal_id"],
    }
    assert client.get("/operations").json()["items"] == []


def test_reveal_of_unknown_proposal_returns_not_found(client):
    _connect(client)

    response = client.post("/proposals/missing/reveal")

    assert response.status_code == 404
    assert response.json()["detail"] == "PROPOSAL_NOT_FOUND"
    assert client.get("/proposals/missing").status_code == 404


def test_invalid_create_payload_is_rejected(client):
    _connect(client)

    assert client.post("/proposals", json={"name": "", "amount": 1}).status_code == 422
    assert client.post("/proposals", json={"name": "X", "amount": -1}).status_code == 422
    assert client.post("/proposals", json={"name": "   ", "amount": 1}).json()["detail"] == (
        "PROPOSAL_NAME_REQUIRED"
    )


def test_refresh_and_disconnect_clear_session(client):
    _connect(client)
    client.post("/proposals", json={"name": "DeFi Yield", "amount": 100})

    report = client.post("/proposals/refresh").json()
    assert len(report["loaded_ids"]) == 1
    assert report["skipped_ids"] == []

    assert client.delete("/session").json()["connected"] is False
    assert client.get("/proposals").status_code == 401


def test_responses_carry_trace_headers_and_metrics_are_exposed(client):
    response = client.get("/health", headers={"X-Correlation-Id": "corr-test"})

    assert response.json() == {"status": "ok"}
    assert response.headers["X-Correlation-Id"] == "corr-test"
    assert response.headers["X-Request-Id"].startswith("req_")
    assert response.headers["traceparent"].startswith("00-")

    _connect(client)
    client.post("/proposals", json={"name": "DeFi Yield", "amount": 100})
    metrics = client.get("/metrics").text
    assert "confidential_proposal_operations_total" in metrics


def test_app_shutdown_closes_relayer_client(monkeypatch):
    monkeypatch.setenv("CRYPTO_GATEWAY_BACKEND", "RELAYER")
    monkeypatch.setenv("CRYPTO_RELAYER_URL", "https://relayer.test")

    with TestClient(app):
        service = get_proposal_service()
        relayer = service._crypto
        assert not relayer._client.is_closed

    assert relayer._client.is_closed
