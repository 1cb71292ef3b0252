"""Razorpay order, verification, webhook and refund flows against the demo gateway."""

import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ertha_exchange.errors import BadRequestError
from ertha_exchange.models import AuditLog, PaymentTransaction, Transaction
from ertha_exchange.services import audit_service
from ertha_exchange.utils.security import hmac_sha256_hex
from support import API, WEBHOOK_SECRET, auth_headers, payment_signature, webhook_request


def _create_order(client, headers, amount=100, **extra):
    response = client.post(f"{API}/payments/create-order", headers=headers,
                           json={"amount": amount, **extra})
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def _verify(client, headers, order_id, payment_id="pay_test_001", signature=None):
    return client.post(f"{API}/payments/verify", headers=headers, json={
        "razorpayOrderId": order_id,
        "razorpayPaymentId": payment_id,
        "razorpaySignature": signature or payment_signature(order_id, payment_id),
    })


# --------------------------------------------------
# Orders
# --------------------------------------------------
def test_create_order_records_pending_rows(client, db, user, user_headers):
    order = _create_order(client, user_headers, amount=150)

    assert order["orderId"].startswith("order_demo_")
    assert order["amountPaise"] == 15000
    assert order["currency"] == "INR"
    assert order["demoMode"] is True

    payment = db.query(PaymentTransaction).one()
    assert payment.status == "created"
    assert payment.razorpay_order_id == order["orderId"]
    txn = db.get(Transaction, order["transactionId"])
    assert txn.status == "pending"
    assert txn.type == "coin_purchase"


def test_create_order_amount_bounds(client, user_headers):
    response = client.post(f"{API}/payments/create-order", headers=user_headers, json={"amount": 5})

    assert response.status_code == 400


def test_orders_alias_route(client, user_headers):
    response = client.post(f"{API}/payments/orders", headers=user_headers, json={"amount": 20})

    assert response.status_code == 201


def test_org_cannot_buy_coins(client, org_headers):
    response = client.post(f"{API}/payments/create-order", headers=org_headers, json={"amount": 20})

    assert response.status_code == 403


# --------------------------------------------------
# Verification
# --------------------------------------------------
def test_verify_credits_wallet_once(client, db, user, user_headers):
    order = _create_order(client, user_headers, amount=100)

    first = _verify(client, user_headers, order["orderId"])
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["alreadyProcessed"] is False
    assert data["walletBalance"] == 600.0
    assert data["payment"]["status"] == "completed"
    assert data["transaction"]["status"] == "completed"

    second = _verify(client, user_headers, order["orderId"])
    assert second.status_code == 200
    assert second.json()["data"]["alreadyProcessed"] is True
    assert second.json()["message"] == "Payment already verified"

    db.refresh(user)
    assert user.wallet_balance == Decimal("600.00")


def test_verify_rejects_bad_signature(client, db, user, user_headers):
    order = _create_order(client, user_headers)

    response = _verify(client, user_headers, order["orderId"], signature="0" * 64)

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid payment signature"
    db.refresh(user)
    assert user.wallet_balance == Decimal("500.00")
    assert db.query(PaymentTransaction).one().status == "created"


def test_verify_someone_elses_order_is_not_found(client, user_headers, make_user):
    order = _create_order(client, user_headers)
    stranger = make_user("user")

    response = _verify(client, auth_headers(stranger), order["orderId"])

    assert response.status_code == 404


def test_service_booking_payment_credits_org(client, db, org, user_headers, make_service):
    service = make_service(price="80")
    order = _create_order(client, user_headers, amount=80, purpose="service_booking", serviceId=service.id)

    assert _verify(client, user_headers, order["orderId"]).status_code == 200

    db.refresh(org)
    db.refresh(service)
    assert org.wallet_balance == Decimal("80.00")
    assert service.bookings == 1


def test_service_booking_order_needs_service(client, user_headers):
    response = client.post(f"{API}/payments/create-order", headers=user_headers,
                           json={"amount": 50, "purpose": "service_booking"})

    assert response.status_code == 400


# --------------------------------------------------
# Webhooks
# --------------------------------------------------
def test_webhook_payment_failed_applies_once(client, db, user_headers):
    order = _create_order(client, user_headers)
    body, headers = webhook_request("payment.failed", {
        "id": "pay_failed_1",
        "order_id": order["orderId"],
        "method": "card",
        "error_description": "Card declined",
    })

    first = client.post(f"{API}/payments/webhook", content=body, headers=headers)
    assert first.status_code == 200
    assert first.json()["data"]["changed"] is True

    second = client.post(f"{API}/payments/webhook", content=body, headers=headers)
    assert second.status_code == 200
    assert second.json()["data"]["changed"] is False

    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.status == "failed"
    assert payment.failure_reason == "Card declined"
    txn = db.get(Transaction, order["transactionId"])
    db.refresh(txn)
    assert txn.status == "failed"


def test_webhook_rejects_bad_signature(client, db, user_headers):
    order = _create_order(client, user_headers)
    body, headers = webhook_request("payment.failed", {"order_id": order["orderId"]})
    headers["x-razorpay-signature"] = "deadbeef"

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 400
    assert db.query(PaymentTransaction).one().status == "created"


def test_webhook_captured_completes_payment(client, db, user, user_headers):
    order = _create_order(client, user_headers, amount=40)
    body, headers = webhook_request("payment.captured", {
        "id": "pay_hook_1", "order_id": order["orderId"], "method": "upi",
    })

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    db.refresh(user)
    assert user.wallet_balance == Decimal("540.00")

    # a later verify with the same payment does not credit again
    again = _verify(client, user_headers, order["orderId"], payment_id="pay_hook_1")
    assert again.json()["data"]["alreadyProcessed"] is True
    db.refresh(user)
    assert user.wallet_balance == Decimal("540.00")


def test_webhook_ignores_unknown_events(client):
    body, headers = webhook_request("order.paid", {"id": "order_x"}, key="order")

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["handled"] is False


def test_webhook_payment_authorized_completes_payment(client, db, user, user_headers):
    order = _create_order(client, user_headers, amount=25)
    body, headers = webhook_request("payment.authorized", {
        "id": "pay_auth_1", "order_id": order["orderId"], "method": "card",
    })

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"event": "payment.authorized", "handled": True, "changed": True}
    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.status == "completed"
    assert payment.razorpay_payment_id == "pay_auth_1"
    assert payment.payment_method == "card"
    db.refresh(user)
    assert user.wallet_balance == Decimal("525.00")


def test_webhook_refund_processed_records_refund(client, db, user_headers):
    order = _create_order(client, user_headers, amount=100)
    _verify(client, user_headers, order["orderId"], payment_id="pay_rfnd_hook")
    body, headers = webhook_request("refund.processed", {
        "id": "rfnd_hook_1", "payment_id": "pay_rfnd_hook", "amount": 2500, "status": "processed",
    }, key="refund")

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["changed"] is True
    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.refund_id == "rfnd_hook_1"
    assert payment.refund_status == "processed"
    assert payment.refund_amount == Decimal("25.00")


def test_webhook_refund_for_unknown_payment_changes_nothing(client):
    body, headers = webhook_request("refund.processed", {"id": "rfnd_x", "payment_id": "pay_missing"},
                                    key="refund")

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["changed"] is False


def test_webhook_rejects_non_object_payload(client):
    body = b"[1, 2]"
    headers = {"x-razorpay-signature": hmac_sha256_hex(WEBHOOK_SECRET, body),
               "content-type": "application/json"}

    response = client.post(f"{API}/payments/webhook", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Malformed webhook payload"


# --------------------------------------------------
# Refunds
# --------------------------------------------------
def test_admin_refund_debits_wallet_and_audits(client, db, user, user_headers, admin, admin_headers):
    order = _create_order(client, user_headers, amount=100)
    _verify(client, user_headers, order["orderId"], payment_id="pay_refund_1")

    response = client.post(f"{API}/payments/refund", headers=admin_headers,
                           json={"paymentId": "pay_refund_1", "reason": "Customer request"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["payment"]["status"] == "refunded"
    assert data["transaction"]["type"] == "refund"
    db.refresh(user)
    assert user.wallet_balance == Decimal("500.00")
    audit = db.query(AuditLog).filter(AuditLog.action == "refund_payment").one()
    assert audit.user_id == admin.id
    assert audit.meta["refundId"] == data["refund"]["id"]
    assert data["transaction"]["metadata"]["refundId"] == data["refund"]["id"]


def test_refund_rejected_when_coins_spent(client, db, make_user, admin_headers):
    buyer = make_user("user", balance="0")
    headers = auth_headers(buyer)
    order = _create_order(client, headers, amount=100)
    _verify(client, headers, order["orderId"], payment_id="pay_spent_1")
    buyer.wallet_balance = Decimal("10")
    db.commit()

    response = client.post(f"{API}/payments/refund", headers=admin_headers, json={"paymentId": "pay_spent_1"})

    assert response.status_code == 400
    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.status == "completed"


def test_refund_requires_admin(client, user_headers):
    response = client.post(f"{API}/payments/refund", headers=user_headers, json={"paymentId": "pay_x"})

    assert response.status_code == 403


def test_refund_leaves_gateway_untouched_when_ledger_write_fails(client, db, user, user_headers,
                                                                 admin_headers, gateway, monkeypatch):
    order = _create_order(client, user_headers, amount=100)
    _verify(client, user_headers, order["orderId"], payment_id="pay_audit_fail")
    gateway_calls = []
    monkeypatch.setattr(gateway, "refund", lambda *args, **kwargs: gateway_calls.append(args))

    def broken_record(*args, **kwargs):
        raise BadRequestError("Audit trail unavailable")

    monkeypatch.setattr(audit_service, "record", broken_record)

    response = client.post(f"{API}/payments/refund", headers=admin_headers,
                           json={"paymentId": "pay_audit_fail"})

    assert response.status_code == 400
    assert gateway_calls == []
    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.status == "completed"
    db.refresh(user)
    assert user.wallet_balance == Decimal("600.00")


def test_refund_logs_error_when_commit_fails_after_gateway(client, db, user_headers, admin_headers,
                                                           gateway, monkeypatch, caplog):
    order = _create_order(client, user_headers, amount=100)
    _verify(client, user_headers, order["orderId"], payment_id="pay_commit_fail")
    real_refund = gateway.refund

    def failing_commit(self):
        raise SQLAlchemyError("commit failed")

    def refund_then_break_commit(*args, **kwargs):
        result = real_refund(*args, **kwargs)
        monkeypatch.setattr(Session, "commit", failing_commit)
        return result

    monkeypatch.setattr(gateway, "refund", refund_then_break_commit)

    with caplog.at_level(logging.ERROR, logger="ertha_exchange.services.payment_service"):
        response = client.post(f"{API}/payments/refund", headers=admin_headers,
                               json={"paymentId": "pay_commit_fail"})
    monkeypatch.undo()

    assert response.status_code == 500
    assert any("succeeded but the local update failed" in r.getMessage() for r in caplog.records)
    payment = db.query(PaymentTransaction).one()
    db.refresh(payment)
    assert payment.status == "completed"
    assert payment.refund_id is None


# --------------------------------------------------
# History + saved methods
# --------------------------------------------------
def test_history_and_stats_are_scoped(client, user_headers, make_user):
    _create_order(client, user_headers, amount=30)
    other = make_user("user")
    _create_order(client, auth_headers(other), amount=70)

    history = client.get(f"{API}/payments/history", headers=user_headers).json()
    assert history["pagination"]["total"] == 1

    stats = client.get(f"{API}/payments/stats", headers=user_headers).json()["data"]
    assert stats["totalPayments"] == 1
    assert stats["byStatus"]["created"]["amount"] == 30.0


def test_payment_methods_mask_card_and_keep_one_default(client, user_headers):
    first = client.post(f"{API}/payments/methods", headers=user_headers, json={
        "type": "card",
        "provider": "visa",
        "isDefault": True,
        "details": {"cardNumber": "4111111111111111", "cvv": "123", "expiry": "12/30"},
    })
    assert first.status_code == 201
    details = first.json()["data"]["details"]
    assert details["cardNumber"] == "************1111"
    assert details["last4"] == "1111"
    assert "cvv" not in details

    second = client.post(f"{API}/payments/methods", headers=user_headers, json={
        "type": "upi", "isDefault": True, "details": {"vpa": "asha@upi"},
    })
    second_id = second.json()["data"]["id"]

    methods = client.get(f"{API}/payments/methods", headers=user_headers).json()["data"]
    assert [m["isDefault"] for m in methods] == [True, False]
    assert methods[0]["id"] == second_id

    assert client.delete(f"{API}/payments/methods/{second_id}", headers=user_headers).status_code == 200
    remaining = client.get(f"{API}/payments/methods", headers=user_headers).json()["data"]
    assert len(remaining) == 1


def test_switching_default_payment_method(client, user_headers):
    card = client.post(f"{API}/payments/methods", headers=user_headers, json={
        "type": "card", "provider": "visa", "isDefault": True,
        "details": {"cardNumber": "4111111111111111"},
    }).json()["data"]
    upi = client.post(f"{API}/payments/methods", headers=user_headers, json={
        "type": "upi", "details": {"vpa": "asha@upi"},
    }).json()["data"]
    assert upi["isDefault"] is False

    response = client.put(f"{API}/payments/methods/{upi['id']}", headers=user_headers,
                          json={"isDefault": True, "provider": "bhim"})

    assert response.status_code == 200
    assert response.json()["data"]["isDefault"] is True
    assert response.json()["data"]["provider"] == "bhim"
    methods = {m["id"]: m for m in client.get(f"{API}/payments/methods", headers=user_headers).json()["data"]}
    assert methods[upi["id"]]["isDefault"] is True
    assert methods[card["id"]]["isDefault"] is False


def test_updating_someone_elses_payment_method_is_not_found(client, user_headers, make_user):
    method = client.post(f"{API}/payments/methods", headers=user_headers, json={
        "type": "upi", "details": {"vpa": "asha@upi"},
    }).json()["data"]

    response = client.put(f"{API}/payments/methods/{method['id']}",
                          headers=auth_headers(make_user("user")), json={"isDefault": True})

    assert response.status_code == 404
