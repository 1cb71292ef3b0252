"""Ledger reads: scoping, filters, stats, history and the status state machine."""

from decimal import Decimal

import pytest

from ertha_exchange.errors import ConflictError
from ertha_exchange.services import transaction_service
from support import API, auth_headers


@pytest.fixture
def ledger(db, user, make_user):
    other = make_user("user")
    rows = [
        transaction_service.create_transaction(db, user_id=user.id, type="coin_purchase",
                                               amount=Decimal("100"), status="completed"),
        transaction_service.create_transaction(db, user_id=user.id, type="service_booking",
                                               amount=Decimal("40"), status="completed"),
        transaction_service.create_transaction(db, user_id=user.id, type="coin_purchase",
                                               amount=Decimal("25"), status="pending"),
        transaction_service.create_transaction(db, user_id=other.id, type="coin_purchase",
                                               amount=Decimal("999"), status="completed"),
    ]
    db.commit()
    return {"mine": rows[:3], "theirs": rows[3], "other": other}


def test_users_only_see_their_own(client, user_headers, ledger):
    body = client.get(f"{API}/transactions", headers=user_headers).json()

    assert body["pagination"]["total"] == 3
    assert ledger["theirs"].id not in {t["id"] for t in body["data"]}


def test_user_id_filter_ignored_for_non_admins(client, user_headers, ledger):
    body = client.get(f"{API}/transactions", headers=user_headers,
                      params={"userId": ledger["other"].id}).json()

    assert body["pagination"]["total"] == 3


def test_admin_sees_everything_and_can_filter(client, admin_headers, ledger):
    everything = client.get(f"{API}/transactions", headers=admin_headers).json()
    assert everything["pagination"]["total"] == 4

    theirs = client.get(f"{API}/transactions", headers=admin_headers,
                        params={"userId": ledger["other"].id}).json()
    assert [t["id"] for t in theirs["data"]] == [ledger["theirs"].id]


def test_type_and_status_filters(client, user_headers, ledger):
    body = client.get(f"{API}/transactions", headers=user_headers,
                      params={"type": "coin_purchase", "status": "pending"}).json()

    assert [t["amount"] for t in body["data"]] == [25.0]


def test_other_users_transaction_is_forbidden(client, user_headers, ledger):
    response = client.get(f"{API}/transactions/{ledger['theirs'].id}", headers=user_headers)

    assert response.status_code == 403


def test_unknown_transaction_is_not_found(client, admin_headers):
    response = client.get(f"{API}/transactions/00000000-0000-0000-0000-000000000000", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Transaction not found"


def test_stats(client, user_headers, ledger):
    data = client.get(f"{API}/transactions/stats", headers=user_headers).json()["data"]

    assert data["totalTransactions"] == 3
    assert data["completedAmount"] == 140.0
    assert data["byType"]["coin_purchase"]["count"] == 2
    assert data["byStatus"]["pending"]["amount"] == 25.0


def test_history_groups_by_day(client, user_headers, ledger):
    data = client.get(f"{API}/transactions/history", headers=user_headers).json()["data"]

    assert sum(len(day["transactions"]) for day in data) == 3
    assert all(day["date"] for day in data)


def test_user_transactions_endpoint(client, user, ledger):
    body = client.get(f"{API}/users/transactions", headers=auth_headers(user),
                      params={"type": "service_booking"}).json()

    assert [t["amount"] for t in body["data"]] == [40.0]


def test_wallet_reports_latest_transaction(client, user_headers, ledger):
    data = client.get(f"{API}/users/wallet", headers=user_headers).json()["data"]

    assert data["balance"] == 500.0
    assert data["currency"] == "ERTHA"
    assert data["lastTransaction"] is not None


# --------------------------------------------------
# Status transitions
# --------------------------------------------------
def test_status_moves_forward_once(db, user):
    txn = transaction_service.create_transaction(db, user_id=user.id, type="coin_purchase",
                                                 amount=Decimal("10"))

    assert transaction_service.update_transaction_status(db, txn, "completed", {"paymentId": "pay_1"})
    assert txn.meta["paymentId"] == "pay_1"
    assert transaction_service.update_transaction_status(db, txn, "completed") is False

    with pytest.raises(ConflictError):
        transaction_service.update_transaction_status(db, txn, "failed")


def test_status_cannot_move_back_to_pending(db, user):
    txn = transaction_service.create_transaction(db, user_id=user.id, type="refund",
                                                 amount=Decimal("10"), status="cancelled")

    with pytest.raises(ConflictError):
        transaction_service.update_transaction_status(db, txn, "pending")
