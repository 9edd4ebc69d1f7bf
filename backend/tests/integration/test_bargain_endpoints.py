"""
Integration tests for the bargaining HTTP API.

WHAT: Route contracts, status codes and error bodies for every bargaining operation
WHY: Clients must be able to tell "out of turns" from "offer too low" from "session closed"
HOW: FastAPI TestClient against the real app and a fresh SQLite database
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

from bargain.main import app
from bargain.services.session_service import session_service

from conftest import BUYER_ID, PRODUCT_ID


@pytest.fixture
def client():
    """Create FastAPI test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_id(client, product, buyer_headers):
    response = client.post("/api/v1/bargains", json={"product_id": product}, headers=buyer_headers)
    assert response.status_code == 201
    return response.json()["id"]


def send(client, session_id, headers, text, amount=None):
    body = {"text": text}
    if amount is not None:
        body.update({"is_offer": True, "offer_amount": amount})
    return client.post(f"/api/v1/bargains/{session_id}/messages", json=body, headers=headers)


@pytest.mark.integration
class TestCreateEndpoint:
    """Test POST /bargains."""

    def test_create_then_resume(self, client, product, buyer_headers):
        first = client.post(
            "/api/v1/bargains", json={"product_id": product, "initial_offer": 97}, headers=buyer_headers
        )
        assert first.status_code == 201
        body = first.json()
        assert body["status"] == "active"
        assert body["initial_price"] == 100.0
        assert body["current_price"] == 97.0
        assert body["floor_price"] == 95.0
        assert body["messages"][0]["is_offer"] is True

        again = client.post("/api/v1/bargains", json={"product_id": product}, headers=buyer_headers)
        assert again.status_code == 200
        assert again.json()["id"] == body["id"]

    def test_unknown_product(self, client, buyer_headers):
        response = client.post("/api/v1/bargains", json={"product_id": "nope"}, headers=buyer_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_seller_role_forbidden(self, client, product, seller_headers):
        response = client.post("/api/v1/bargains", json={"product_id": product}, headers=seller_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_missing_token(self, client, product):
        response = client.post("/api/v1/bargains", json={"product_id": product})
        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    def test_invalid_token(self, client, product):
        response = client.post(
            "/api/v1/bargains", json={"product_id": product}, headers={"Authorization": "Bearer junk"}
        )
        assert response.status_code == 401

    def test_body_validation(self, client, buyer_headers):
        response = client.post("/api/v1/bargains", json={}, headers=buyer_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "timestamp" in body


@pytest.mark.integration
class TestReadEndpoints:
    """Test GET routes."""

    def test_get_by_participants(self, client, session_id, buyer_headers, seller_headers):
        for headers in (buyer_headers, seller_headers):
            response = client.get(f"/api/v1/bargains/{session_id}", headers=headers)
            assert response.status_code == 200
            assert response.json()["id"] == session_id

    def test_get_by_stranger(self, client, session_id, other_buyer_headers):
        response = client.get(f"/api/v1/bargains/{session_id}", headers=other_buyer_headers)
        assert response.status_code == 403

    def test_get_unknown(self, client, buyer_headers):
        assert client.get("/api/v1/bargains/unknown", headers=buyer_headers).status_code == 404

    def test_lists(self, client, session_id, buyer_headers, seller_headers):
        buyer_list = client.get("/api/v1/bargains/buyer", headers=buyer_headers)
        seller_list = client.get("/api/v1/bargains/seller", headers=seller_headers)

        assert [s["id"] for s in buyer_list.json()] == [session_id]
        assert [s["id"] for s in seller_list.json()] == [session_id]
        assert "messages" not in buyer_list.json()[0]

    def test_list_wrong_role(self, client, buyer_headers, seller_headers):
        assert client.get("/api/v1/bargains/seller", headers=buyer_headers).status_code == 403
        assert client.get("/api/v1/bargains/buyer", headers=seller_headers).status_code == 403


@pytest.mark.integration
class TestMessageEndpoint:
    """Test POST /bargains/{id}/messages and its error mapping."""

    def test_offer_window(self, client, session_id, buyer_headers):
        low = send(client, session_id, buyer_headers, "How about $94?", 94)
        assert low.status_code == 422
        assert low.json()["error"] == "INVALID_OFFER"
        assert low.json()["details"]["floor"] == 95.0

        ok = send(client, session_id, buyer_headers, "How about $96?", 96)
        assert ok.status_code == 201
        assert ok.json()["sender"] == "buyer"
        assert ok.json()["sequence"] == 1

        view = client.get(f"/api/v1/bargains/{session_id}", headers=buyer_headers).json()
        assert view["current_price"] == 96.0

    def test_turn_limit(self, client, session_id, buyer_headers, seller_headers):
        assert send(client, session_id, buyer_headers, "Any room on price?").status_code == 201
        assert send(client, session_id, seller_headers, "Some.").status_code == 201
        assert send(client, session_id, seller_headers, "Offer?").status_code == 201

        for headers in (buyer_headers, seller_headers):
            response = send(client, session_id, headers, "one more")
            assert response.status_code == 429
            assert response.json()["error"] == "TURN_LIMIT_EXCEEDED"

    def test_stranger_forbidden(self, client, session_id, other_buyer_headers):
        assert send(client, session_id, other_buyer_headers, "hi").status_code == 403

    def test_unknown_session(self, client, buyer_headers):
        assert send(client, "nope", buyer_headers, "hi").status_code == 404

    @pytest.mark.parametrize("body", [
        {"text": ""},
        {"text": "   "},
        {"text": "offer", "is_offer": True},
        {"text": "chat", "offer_amount": 96},
    ])
    def test_payload_validation(self, client, session_id, buyer_headers, body):
        response = client.post(f"/api/v1/bargains/{session_id}/messages", json=body, headers=buyer_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.integration
class TestStatusAndCart:
    """Test PUT /status and POST /cart."""

    def test_accept_then_closed_then_cart(self, client, session_id, buyer_headers, seller_headers):
        send(client, session_id, buyer_headers, "$96?", 96)

        accepted = client.put(
            f"/api/v1/bargains/{session_id}/status", json={"status": "accepted"}, headers=seller_headers
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert accepted.json()["current_price"] == 96.0

        closed = send(client, session_id, buyer_headers, "Great!")
        assert closed.status_code == 409
        assert closed.json()["error"] == "INVALID_STATE"

        cart = client.post(f"/api/v1/bargains/{session_id}/cart", headers=buyer_headers)
        assert cart.status_code == 201
        assert cart.json()["bargained_price"] == 96.0
        assert cart.json()["buyer_id"] == BUYER_ID
        assert cart.json()["product_id"] == PRODUCT_ID

        again = client.post(f"/api/v1/bargains/{session_id}/cart", headers=buyer_headers)
        assert again.json()["id"] == cart.json()["id"]

    def test_buyer_cannot_decide(self, client, session_id, buyer_headers):
        response = client.put(
            f"/api/v1/bargains/{session_id}/status", json={"status": "accepted"}, headers=buyer_headers
        )
        assert response.status_code == 403

    def test_decide_twice(self, client, session_id, seller_headers):
        url = f"/api/v1/bargains/{session_id}/status"
        assert client.put(url, json={"status": "rejected"}, headers=seller_headers).status_code == 200
        assert client.put(url, json={"status": "accepted"}, headers=seller_headers).status_code == 409

    def test_unsupported_status(self, client, session_id, seller_headers):
        response = client.put(
            f"/api/v1/bargains/{session_id}/status", json={"status": "expired"}, headers=seller_headers
        )
        assert response.status_code == 400

    def test_cart_before_accept(self, client, session_id, buyer_headers):
        response = client.post(f"/api/v1/bargains/{session_id}/cart", headers=buyer_headers)
        assert response.status_code == 409


@pytest.mark.integration
class TestInfrastructure:
    """Test health and unexpected failures."""

    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["components"]["database"]["available"] is True
        assert "connections" in body["components"]["realtime"]

    def test_unexpected_error_is_generic(self, product, buyer_headers):
        with TestClient(app, raise_server_exceptions=False) as client:
            with patch.object(session_service, "list_for_buyer", side_effect=RuntimeError("disk on fire")):
                response = client.get("/api/v1/bargains/buyer", headers=buyer_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "INTERNAL_ERROR"
        assert "disk on fire" not in response.text
