"""
Tests del endpoint de reservaciones.

La orquestación corre inline (ver fixture `container`), así que la respuesta
del POST ya trae el resultado final contra el proveedor stub.
"""

from decimal import Decimal

from fastapi.testclient import TestClient


class TestStartBooking:
    def test_confirms_booking(self, client: TestClient, booking_payload):
        response = client.post("/api/v1/bookings", json=booking_payload)

        assert response.status_code == 202, response.text
        assert response.headers["location"] == "/api/v1/bookings/cid-http-0001"
        body = response.json()
        assert body["status"] == "confirmed"
        assert body["state"] == "confirmed"
        assert body["reservation_code"].startswith("HB-")
        assert body["order_id"].startswith("ORD-")
        assert body["guest_count"] == 1
        assert body["price"]["customer_price"] == "1000.00"

    def test_applies_margin_rule(self, client: TestClient, booking_payload):
        rule = client.post(
            "/api/v1/margin-rules",
            json={"name": "Default", "type": "percentage", "value": "10", "priority": 1},
        ).json()

        body = client.post("/api/v1/bookings", json=booking_payload).json()
        stats = client.get("/api/v1/margin-rules/stats").json()

        assert Decimal(body["price"]["customer_price"]) == Decimal("1100.00")
        assert Decimal(body["price"]["margin_amount"]) == Decimal("100.00")
        assert body["price"]["margin_rule_id"] == rule["id"]
        assert stats["total_applied"] == 1

    def test_replay_returns_same_reservation(self, client: TestClient, booking_payload, supplier):
        first = client.post("/api/v1/bookings", json=booking_payload).json()
        second = client.post("/api/v1/bookings", json=booking_payload)

        assert second.status_code == 202
        assert second.json()["reservation_code"] == first["reservation_code"]
        assert supplier.call_count("start_booking") == 1

    def test_conflicting_replay(self, client: TestClient, booking_payload):
        client.post("/api/v1/bookings", json=booking_payload)

        response = client.post("/api/v1/bookings", json={**booking_payload, "match_hash": "m-other"})

        assert response.status_code == 409
        assert response.json()["code"] == "IDEMPOTENCY_CONFLICT"

    def test_invalid_dates(self, client: TestClient, booking_payload):
        response = client.post("/api/v1/bookings", json={**booking_payload, "check_out": "2026-03-09"})

        assert response.status_code == 422
        assert response.json()["field"] == "check_out"

    def test_schema_validation(self, client: TestClient, booking_payload):
        payload = {**booking_payload, "guest_details": {**booking_payload["guest_details"], "email": "nope"}}

        response = client.post("/api/v1/bookings", json=payload)

        assert response.status_code == 422

    def test_sandbox_restriction_is_reported(self, client: TestClient, booking_payload, supplier):
        supplier.form_error = "sandbox_restriction"

        body = client.post("/api/v1/bookings", json=booking_payload).json()

        assert body["status"] == "denied"
        assert body["failure_reason"] == "sandbox_restriction"
        assert "cannot be booked" in body["customer_message"]
        assert supplier.call_count("start_booking") == 0


class TestBookingLifecycle:
    def test_get_and_transitions(self, client: TestClient, booking_payload):
        client.post("/api/v1/bookings", json=booking_payload)

        booking = client.get("/api/v1/bookings/cid-http-0001")
        transitions = client.get("/api/v1/bookings/cid-http-0001/transitions")

        assert booking.status_code == 200
        assert [t["to_state"] for t in transitions.json()] == [
            "locking",
            "locked",
            "creating",
            "awaiting_guest_confirm",
            "submitting",
            "polling",
            "confirmed",
        ]

    def test_unknown_booking(self, client: TestClient):
        response = client.get("/api/v1/bookings/cid-missing-01")

        assert response.status_code == 404
        assert response.json()["code"] == "BOOKING_NOT_FOUND"

    def test_timeout_then_recheck(self, client: TestClient, booking_payload, supplier):
        supplier.status_sequence = ["processing"]

        pending = client.post("/api/v1/bookings", json=booking_payload).json()
        still_processing = client.post("/api/v1/bookings/cid-http-0001/recheck")
        supplier.status_sequence = ["ok"]
        confirmed = client.post("/api/v1/bookings/cid-http-0001/recheck")

        assert pending["status"] == "pending"
        assert pending["failure_reason"] == "timeout"
        assert still_processing.status_code == 202
        assert still_processing.json()["correlation_id"] == "cid-http-0001"
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"

    def test_cancel(self, client: TestClient, booking_payload):
        client.post("/api/v1/bookings", json=booking_payload)

        response = client.post("/api/v1/bookings/cid-http-0001/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["refund_amount"] == "1000.00"

    def test_cancel_refused(self, client: TestClient, booking_payload, supplier):
        client.post("/api/v1/bookings", json=booking_payload)
        supplier.cancel_error = "order_not_cancellable"

        response = client.post("/api/v1/bookings/cid-http-0001/cancel")

        assert response.status_code == 409
        assert response.json()["supplier_error_code"] == "order_not_cancellable"
        booking = client.get("/api/v1/bookings/cid-http-0001").json()
        assert booking["status"] == "confirmed"
        assert booking["cancel_refusal_code"] == "order_not_cancellable"
        assert booking["failure_code"] is None

    def test_abandon_after_confirmation_is_refused(self, client: TestClient, booking_payload):
        client.post("/api/v1/bookings", json=booking_payload)

        response = client.post("/api/v1/bookings/cid-http-0001/abandon")

        assert response.status_code == 200
        assert response.json()["accepted"] is False
        assert response.json()["reservation"]["status"] == "confirmed"
