"""Integration tests for the order endpoints via TestClient."""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

WIDGET = {
    "productId": "p1",
    "productName": "Widget",
    "price": 9.99,
    "userEmail": "a@example.com",
}


def _parse(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _place(client, auth_headers, **fields):
    response = client.post("/api/orders", json={**WIDGET, **fields}, headers=auth_headers())
    assert response.status_code == 201
    return response.json()["order"]


class TestPlaceOrder:
    def test_creates_order_with_defaults(self, client, auth_headers, mailer):
        response = client.post("/api/orders", json=WIDGET, headers=auth_headers())

        assert response.status_code == 201
        body = response.json()
        order = body["order"]
        assert order["quantity"] == 1
        assert ObjectId.is_valid(order["id"])
        assert order["productName"] == "Widget"
        assert order["userId"] == "user-1"
        assert body["message"] == "Order saved & email sent"
        assert body["notification"] == {"status": "sent", "error": None}

        assert len(mailer.sent_emails) == 1
        email = mailer.sent_emails[0]
        assert email["to"] == "a@example.com"
        assert email["subject"] == "Your Order is Confirmed"
        assert order["id"] in email["html"]

    def test_created_at_is_assigned_by_server(self, client, auth_headers):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        order = _place(client, auth_headers, createdAt="2000-01-01T00:00:00Z")
        after = datetime.now(timezone.utc) + timedelta(seconds=1)

        created_at = _parse(order["createdAt"])
        assert before <= created_at <= after

    def test_keeps_explicit_quantity_and_image(self, client, auth_headers):
        order = _place(client, auth_headers, quantity=3, image="https://img.example.com/w.png")
        assert order["quantity"] == 3
        assert order["image"] == "https://img.example.com/w.png"

    def test_missing_fields_are_rejected_and_not_persisted(self, client, auth_headers, mailer):
        for field in ("productId", "productName", "price", "userEmail"):
            payload = {k: v for k, v in WIDGET.items() if k != field}
            response = client.post("/api/orders", json=payload, headers=auth_headers())

            assert response.status_code == 400
            assert response.json()["message"] == "Missing fields"
            assert field in response.json()["fields"]

        assert client.get("/api/orders/a@example.com").json() == []
        assert mailer.sent_emails == []

    def test_whitespace_only_fields_count_as_missing(self, client, auth_headers, mailer):
        payload = {"productId": "  ", "productName": " ", "price": 1, "userEmail": "   "}

        response = client.post("/api/orders", json=payload, headers=auth_headers())

        assert response.status_code == 400
        assert response.json()["message"] == "Missing fields"
        assert response.json()["fields"] == ["productId", "productName", "userEmail"]
        assert mailer.sent_emails == []

    def test_negative_price_is_rejected(self, client, auth_headers):
        response = client.post("/api/orders", json={**WIDGET, "price": -1}, headers=auth_headers())
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request"

    @pytest.mark.parametrize("literal", ["Infinity", "NaN"])
    def test_non_finite_price_is_rejected(self, client, auth_headers, mailer, literal):
        body = (
            '{"productId": "p1", "productName": "Widget", '
            f'"price": {literal}, "userEmail": "a@example.com"}}'
        )
        headers = {**auth_headers(), "Content-Type": "application/json"}

        response = client.post("/api/orders", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request"
        assert client.get("/api/orders/a@example.com").json() == []
        assert mailer.sent_emails == []

    def test_requires_token(self, client):
        response = client.post("/api/orders", json=WIDGET)
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized: No token"

    def test_rejects_bad_token(self, client):
        response = client.post(
            "/api/orders", json=WIDGET, headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized: Invalid token"

    def test_mail_failure_does_not_fail_the_order(self, client, auth_headers, mailer):
        mailer.configure(should_succeed=False)

        response = client.post("/api/orders", json=WIDGET, headers=auth_headers())

        assert response.status_code == 201
        body = response.json()
        assert body["notification"]["status"] == "failed"
        assert body["notification"]["error"] == "SMTP relay unavailable"
        listed = client.get("/api/orders/a@example.com").json()
        assert [o["id"] for o in listed] == [body["order"]["id"]]


class TestListOrders:
    def test_returns_only_matching_email_newest_first(self, client, auth_headers):
        first = _place(client, auth_headers)
        _place(client, auth_headers, userEmail="b@example.com")
        second = _place(client, auth_headers)
        third = _place(client, auth_headers)

        response = client.get("/api/orders/a@example.com")

        assert response.status_code == 200
        orders = response.json()
        assert [o["id"] for o in orders] == [third["id"], second["id"], first["id"]]
        assert all(o["userEmail"] == "a@example.com" for o in orders)

    def test_email_match_is_exact(self, client, auth_headers):
        _place(client, auth_headers, userEmail="A@example.com")
        assert client.get("/api/orders/a@example.com").json() == []

    def test_unknown_email_returns_empty_list(self, client):
        response = client.get("/api/orders/nobody@example.com")
        assert response.status_code == 200
        assert response.json() == []

    def test_undefined_sentinel_is_rejected(self, client):
        response = client.get("/api/orders/undefined")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid email"


class TestCancelOrder:
    def test_cancel_removes_order_and_sends_email(self, client, auth_headers, mailer):
        order = _place(client, auth_headers)
        mailer.sent_emails.clear()

        response = client.delete(f"/api/orders/{order['id']}")

        assert response.status_code == 200
        assert response.json()["message"] == "Order cancelled & email sent"
        listed = client.get("/api/orders/a@example.com").json()
        assert order["id"] not in [o["id"] for o in listed]

        assert len(mailer.sent_emails) == 1
        email = mailer.sent_emails[0]
        assert email["subject"] == "Your Order Has Been Cancelled"
        assert "Cancelled At" in email["html"]

    def test_unknown_id_is_not_found_and_sends_nothing(self, client, mailer):
        response = client.delete(f"/api/orders/{ObjectId()}")

        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"
        assert mailer.sent_emails == []

    def test_malformed_id_is_not_found(self, client, mailer):
        response = client.delete("/api/orders/not-an-object-id")
        assert response.status_code == 404
        assert mailer.sent_emails == []

    def test_mail_failure_still_deletes(self, client, auth_headers, mailer):
        order = _place(client, auth_headers)
        mailer.configure(should_succeed=False)

        response = client.delete(f"/api/orders/{order['id']}")

        assert response.status_code == 200
        assert response.json()["notification"]["status"] == "failed"
        assert client.get("/api/orders/a@example.com").json() == []

    def test_second_cancel_is_not_found(self, client, auth_headers):
        order = _place(client, auth_headers)
        assert client.delete(f"/api/orders/{order['id']}").status_code == 200
        assert client.delete(f"/api/orders/{order['id']}").status_code == 404
