"""Tests for checkout, webhook reconciliation and the payment outbox."""
import json

import pytest
from pymongo.errors import PyMongoError

from repositories.payment_events import DONE, FAILED, PENDING


def _event(payment_id, event_type="payment_intent.succeeded", event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": {"id": payment_id}}}


@pytest.fixture
def order(services, make_product, user):
    product = make_product(price=10, stock=5)
    return services.orders.create_order(str(user["_id"]), [{"product_id": str(product["_id"]), "quantity": 2}])


def _reload(services, order):
    return services.orders.orders.find_by_id(order["_id"])


class TestWebhookReconciliation:
    def test_approved_payment_confirms_order(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]), amount=20)

        response = client.post("/api/payments/webhook", json=_event("pi_1"))
        assert response.status_code == 200
        assert response.json() == {"received": True, "payment_id": "pi_1"}
        assert services.worker.run_once() == 1

        stored = _reload(services, order)
        assert stored["status"] == "confirmed"
        assert stored["is_paid"] is True
        assert stored["paid_at"] is not None
        assert stored["payment_id"] == "pi_1"
        assert stored["payment_status"] == "approved"

    def test_rejected_payment_cancels_order(self, client, services, gateway, order):
        gateway.add_payment("pi_2", "rejected", order_id=str(order["_id"]))

        client.post("/api/payments/webhook", json=_event("pi_2", "payment_intent.payment_failed"))
        services.worker.run_once()

        stored = _reload(services, order)
        assert stored["status"] == "cancelled"
        assert stored["is_paid"] is False
        assert stored["payment_status"] == "rejected"

    def test_pending_payment_leaves_status(self, client, services, gateway, order):
        gateway.add_payment("pi_3", "in_process", order_id=str(order["_id"]))

        client.post("/api/payments/webhook", json=_event("pi_3", "payment_intent.processing"))
        services.worker.run_once()

        stored = _reload(services, order)
        assert stored["status"] == "pending"
        assert stored["payment_status"] == "in_process"
        assert stored["is_paid"] is False

    def test_order_found_by_stored_payment_id(self, client, services, gateway, order):
        services.orders.orders.update(order["_id"], {"payment_id": "pi_4"})
        gateway.add_payment("pi_4", "approved")

        client.post("/api/payments/webhook", json=_event("pi_4"))
        services.worker.run_once()

        assert _reload(services, order)["is_paid"] is True

    def test_duplicate_delivery_is_one_event(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))

        client.post("/api/payments/webhook", json=_event("pi_1"))
        client.post("/api/payments/webhook", json=_event("pi_1"))
        assert services.db["payment_events"].count_documents({"payment_id": "pi_1"}) == 1

        assert services.worker.run_once() == 1
        first = _reload(services, order)

        client.post("/api/payments/webhook", json=_event("pi_1"))
        services.worker.run_once()
        again = _reload(services, order)
        assert again["version"] == first["version"]
        assert again["paid_at"] == first["paid_at"]

    def test_paid_order_does_not_regress(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1"))
        services.worker.run_once()

        gateway.add_payment("pi_1", "rejected", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1", "payment_intent.payment_failed", "evt_2"))
        services.worker.run_once()

        stored = _reload(services, order)
        assert stored["status"] == "confirmed"
        assert stored["is_paid"] is True
        assert stored["payment_status"] == "approved"

    def test_other_payment_ignored_once_paid(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        gateway.add_payment("pi_9", "rejected", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1"))
        services.worker.run_once()

        client.post("/api/payments/webhook", json=_event("pi_9", "payment_intent.payment_failed"))
        services.worker.run_once()

        stored = _reload(services, order)
        assert stored["payment_id"] == "pi_1"
        assert stored["status"] == "confirmed"

    def test_refund_updates_payment_status_only(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1"))
        services.worker.run_once()

        gateway.add_payment("pi_1", "refunded", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json={
            "id": "evt_3", "type": "charge.refunded", "data": {"object": {"payment_intent": "pi_1"}},
        })
        services.worker.run_once()

        stored = _reload(services, order)
        assert stored["payment_status"] == "refunded"
        assert stored["status"] == "confirmed"
        assert stored["is_paid"] is True

    def test_unrelated_event_is_ignored(self, client, services):
        response = client.post("/api/payments/webhook", json={"id": "evt_x", "type": "customer.created",
                                                               "data": {"object": {"id": "cus_1"}}})
        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert services.db["payment_events"].count_documents({}) == 0

    def test_malformed_payload_still_acknowledged(self, client, services):
        response = client.post("/api/payments/webhook", content=b"{not json",
                               headers={"content-type": "application/json"})
        assert response.status_code == 200
        assert response.json() == {"received": False}
        assert services.db["payment_events"].count_documents({}) == 0

    @pytest.mark.parametrize("body", [
        [1, 2],
        "x",
        {"type": "payment_intent.succeeded", "data": {"object": "pi"}},
        {"type": "payment_intent.succeeded", "data": "pi"},
    ])
    def test_non_object_event_still_acknowledged(self, client, services, body):
        response = client.post("/api/payments/webhook", json=body)
        assert response.status_code == 200
        assert response.json() == {"received": False}
        assert services.db["payment_events"].count_documents({}) == 0

    def test_unknown_order_marks_event_done(self, client, services, gateway):
        gateway.add_payment("pi_orphan", "approved")
        client.post("/api/payments/webhook", json=_event("pi_orphan"))
        services.worker.run_once()
        assert services.db["payment_events"].find_one({"payment_id": "pi_orphan"})["state"] == DONE


class TestOutboxRetries:
    def test_lookup_failure_is_retried_later(self, client, services, gateway, order):
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        gateway.fail_lookups = True
        client.post("/api/payments/webhook", json=_event("pi_1"))

        assert services.worker.run_once() == 1
        event = services.db["payment_events"].find_one({"payment_id": "pi_1"})
        assert event["state"] == PENDING
        assert event["attempts"] == 1
        assert "No such payment_intent" in event["last_error"]
        assert event["available_at"] > event["updated_at"]
        assert _reload(services, order)["is_paid"] is False

    def test_gives_up_after_max_attempts(self, client, services, gateway, order):
        services.payments.max_attempts = 1
        client.post("/api/payments/webhook", json=_event("pi_missing"))

        services.worker.run_once()
        event = services.db["payment_events"].find_one({"payment_id": "pi_missing"})
        assert event["state"] == FAILED
        assert "pi_missing" in event["last_error"]

    def test_renotification_requeues_failed_event(self, client, services, gateway, order):
        services.payments.max_attempts = 1
        client.post("/api/payments/webhook", json=_event("pi_1"))
        services.worker.run_once()

        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1", event_id="evt_2"))
        services.worker.run_once()

        assert services.db["payment_events"].find_one({"payment_id": "pi_1"})["state"] == DONE
        assert _reload(services, order)["is_paid"] is True

    def test_unexpected_error_is_recorded_and_retried(self, client, services, gateway, order, monkeypatch):
        def broken(payment_id):
            raise PyMongoError("db hiccup")

        monkeypatch.setattr(services.payments, "reconcile", broken)
        client.post("/api/payments/webhook", json=_event("pi_1"))

        assert services.worker.run_once() == 1
        event = services.db["payment_events"].find_one({"payment_id": "pi_1"})
        assert event["state"] == PENDING
        assert event["attempts"] == 1
        assert "db hiccup" in event["last_error"]

    def test_unexpected_error_gives_up_after_max_attempts(self, client, services, gateway, order, monkeypatch):
        def broken(*args, **kwargs):
            raise PyMongoError("db hiccup")

        services.payments.max_attempts = 1
        monkeypatch.setattr(services.payments, "apply_payment", broken)
        gateway.add_payment("pi_1", "approved", order_id=str(order["_id"]))
        client.post("/api/payments/webhook", json=_event("pi_1"))

        assert services.worker.run_once() == 1
        event = services.db["payment_events"].find_one({"payment_id": "pi_1"})
        assert event["state"] == FAILED
        assert "db hiccup" in event["last_error"]

    def test_empty_outbox(self, services):
        assert services.worker.run_once() == 0
        assert services.payments.process_next() is False


class TestCheckoutAndVerify:
    def test_create_order_checkout(self, client, services, gateway, order, user_headers):
        response = client.post(f"/api/orders/{order['_id']}/payment", headers=user_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == "cs_test_1"
        assert data["url"].endswith("cs_test_1")
        assert _reload(services, order)["checkout_session_id"] == "cs_test_1"

    def test_paid_order_cannot_checkout(self, client, services, order, user_headers):
        services.orders.orders.update(order["_id"], {"is_paid": True})
        response = client.post(f"/api/orders/{order['_id']}/payment", headers=user_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Order is already paid"

    def test_cancelled_order_cannot_checkout(self, client, services, order, user_headers):
        services.orders.update_status(str(order["_id"]), "cancelled")
        response = client.post(f"/api/orders/{order['_id']}/payment", headers=user_headers)
        assert response.status_code == 400

    def test_checkout_of_someone_elses_order(self, client, order, make_user, headers):
        response = client.post(f"/api/orders/{order['_id']}/payment", headers=headers(make_user()))
        assert response.status_code == 403

    def test_verify_through_checkout_session(self, client, services, gateway, order, user_headers):
        client.post(f"/api/orders/{order['_id']}/payment", headers=user_headers)
        gateway.sessions["cs_test_1"]["payment_id"] = "pi_1"
        gateway.add_payment("pi_1", "approved")

        response = client.post(f"/api/orders/{order['_id']}/verify-payment", headers=user_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "confirmed"
        assert data["is_paid"] is True

    def test_verify_with_explicit_payment_id(self, client, gateway, order, user_headers):
        gateway.add_payment("pi_5", "approved", order_id=str(order["_id"]))
        response = client.post(
            f"/api/orders/{order['_id']}/verify-payment", json={"payment_id": "pi_5"}, headers=user_headers
        )
        assert response.json()["data"]["is_paid"] is True

    def test_verify_rejects_foreign_payment(self, client, gateway, order, user_headers):
        gateway.add_payment("pi_6", "approved", order_id="64b000000000000000000000")
        response = client.post(
            f"/api/orders/{order['_id']}/verify-payment", json={"payment_id": "pi_6"}, headers=user_headers
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Payment does not belong to this order"

    def test_verify_without_payment(self, client, order, user_headers):
        response = client.post(f"/api/orders/{order['_id']}/verify-payment", headers=user_headers)
        assert response.status_code == 400

    def test_gateway_error_is_reported(self, client, gateway, order, user_headers):
        response = client.post(
            f"/api/orders/{order['_id']}/verify-payment", json={"payment_id": "pi_nope"}, headers=user_headers
        )
        assert response.status_code == 500
        assert response.json()["success"] is False


class TestRedirects:
    def test_success_reconciles_and_redirects(self, client, services, gateway, order, user_headers):
        client.post(f"/api/orders/{order['_id']}/payment", headers=user_headers)
        gateway.sessions["cs_test_1"]["payment_id"] = "pi_1"
        gateway.add_payment("pi_1", "approved")

        response = client.get("/api/payments/success", params={"session_id": "cs_test_1"}, follow_redirects=False)
        assert response.status_code == 302
        location = response.headers["location"]
        assert "/shop?payment=success" in location
        assert "paymentId=pi_1" in location
        assert "status=approved" in location
        assert f"orderId={order['_id']}" in location
        assert _reload(services, order)["is_paid"] is True

    def test_success_with_unknown_session_still_redirects(self, client):
        response = client.get("/api/payments/success", params={"session_id": "cs_nope"}, follow_redirects=False)
        assert response.status_code == 302
        assert "payment=success" in response.headers["location"]

    def test_failure_and_pending(self, client):
        failure = client.get("/api/payments/failure", params={"order_id": "o1"}, follow_redirects=False)
        assert "payment=failure" in failure.headers["location"]
        assert "status=cancelled" in failure.headers["location"]
        pending = client.get("/api/payments/pending", follow_redirects=False)
        assert "payment=pending" in pending.headers["location"]


class TestStandalonePayments:
    def test_checkout(self, client, user_headers):
        response = client.post(
            "/api/payments/checkout", json={"description": "Gift card", "amount": 25}, headers=user_headers
        )
        assert response.status_code == 201
        assert response.json()["data"]["url"].startswith("https://checkout.test/")

    def test_checkout_requires_positive_amount(self, client, user_headers):
        response = client.post(
            "/api/payments/checkout", json={"description": "Gift card", "amount": 0}, headers=user_headers
        )
        assert response.status_code == 400

    def test_subscription_lifecycle(self, client, gateway, user_headers):
        created = client.post(
            "/api/payments/subscriptions", json={"reason": "Club", "amount": 9.5, "frequency_type": "month"},
            headers=user_headers,
        )
        assert created.status_code == 201
        sub_id = created.json()["data"]["id"]

        fetched = client.get(f"/api/payments/subscriptions/{sub_id}", headers=user_headers)
        assert fetched.json()["data"]["status"] == "active"

        cancelled = client.delete(f"/api/payments/subscriptions/{sub_id}", headers=user_headers)
        assert cancelled.json()["data"]["status"] == "canceled"

    def test_get_payment(self, client, gateway, user_headers):
        gateway.add_payment("pi_7", "approved", amount=12.5)
        data = client.get("/api/payments/pi_7", headers=user_headers).json()["data"]
        assert data["id"] == "pi_7"
        assert data["status"] == "approved"
        assert data["amount"] == 12.5

    def test_payment_lookup_requires_login(self, client, gateway):
        gateway.add_payment("pi_7", "approved")
        assert client.get("/api/payments/pi_7").status_code == 401


def test_webhook_event_body_is_bytes_json(services):
    result = services.payments.receive_webhook(json.dumps(_event("pi_x")).encode(), None)
    assert result == {"received": True, "payment_id": "pi_x"}
