"""Service catalogue, reviews and wallet booking."""

from decimal import Decimal

from ertha_exchange.models import Service, Transaction, User
from support import API, auth_headers

SERVICE_PAYLOAD = {
    "title": "Solar panel cleaning",
    "description": "Quarterly cleaning of rooftop solar panels by a certified crew.",
    "price": 250,
    "category": "renewable-energy",
    "features": ["quarterly visit", " eco detergents "],
}


# --------------------------------------------------
# Catalogue
# --------------------------------------------------
def test_org_creates_pending_service(client, org, org_headers):
    response = client.post(f"{API}/services", headers=org_headers, json=SERVICE_PAYLOAD)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["organizationId"] == org.id
    assert data["features"] == ["quarterly visit", "eco detergents"]


def test_user_cannot_create_service(client, user_headers):
    response = client.post(f"{API}/services", headers=user_headers, json=SERVICE_PAYLOAD)

    assert response.status_code == 403
    assert response.json()["message"] == "Insufficient permissions"


def test_anonymous_listing_shows_active_only(client, make_service):
    make_service(title="Active listing one")
    make_service(title="Pending listing one", status="pending")

    body = client.get(f"{API}/services").json()

    assert [s["title"] for s in body["data"]] == ["Active listing one"]
    assert body["pagination"]["total"] == 1


def test_listing_pagination_meta(client, make_service):
    for i in range(12):
        make_service(title=f"Composting workshop {i}")

    body = client.get(f"{API}/services", params={"page": 2, "limit": 5}).json()

    assert len(body["data"]) == 5
    assert body["pagination"] == {
        "page": 2,
        "limit": 5,
        "total": 12,
        "totalPages": 3,
        "hasNext": True,
        "hasPrev": True,
    }


def test_listing_limit_is_capped(client):
    response = client.get(f"{API}/services", params={"limit": 500})

    assert response.status_code == 400


def test_listing_filters_and_sort(client, make_service):
    make_service(title="Cheap seed swap", price="20", category="gardening")
    make_service(title="Premium garden plan", price="900", category="gardening")
    make_service(title="Bike repair class", price="300", category="transport")

    body = client.get(
        f"{API}/services",
        params={"category": "gardening", "sortBy": "price", "sortOrder": "asc"},
    ).json()
    assert [s["price"] for s in body["data"]] == [20.0, 900.0]

    body = client.get(f"{API}/services", params={"minPrice": 100, "maxPrice": 500}).json()
    assert [s["title"] for s in body["data"]] == ["Bike repair class"]

    body = client.get(f"{API}/services", params={"search": "garden"}).json()
    assert [s["title"] for s in body["data"]] == ["Premium garden plan"]


def test_org_sees_own_pending_listings(client, org, org_headers, make_service):
    make_service(title="Pending listing two", status="pending")

    body = client.get(f"{API}/services", headers=org_headers,
                      params={"organizationId": org.id}).json()

    assert [s["status"] for s in body["data"]] == ["pending"]


def test_categories_are_distinct_active(client, make_service):
    make_service(category="organic-products")
    make_service(title="Another veggie box", category="organic-products")
    make_service(title="Hidden pending item", category="hidden", status="pending")

    body = client.get(f"{API}/services/categories").json()

    assert body["data"] == ["organic-products"]


def test_pending_service_hidden_from_public(client, make_service, org_headers, admin_headers):
    service = make_service(status="pending")

    assert client.get(f"{API}/services/{service.id}").status_code == 404
    assert client.get(f"{API}/services/{service.id}", headers=org_headers).status_code == 200
    assert client.get(f"{API}/services/{service.id}", headers=admin_headers).status_code == 200


def test_malformed_service_id_is_rejected(client):
    assert client.get(f"{API}/services/not-a-uuid").status_code == 400


def test_owner_updates_service(client, org_headers, make_service):
    service = make_service()

    response = client.put(f"{API}/services/{service.id}", headers=org_headers,
                          json={"price": 120, "title": "Organic fruit box"})

    assert response.status_code == 200
    assert response.json()["data"]["price"] == 120.0
    assert response.json()["data"]["status"] == "active"


def test_org_cannot_change_status(client, org_headers, make_service):
    service = make_service(status="pending")

    response = client.put(f"{API}/services/{service.id}", headers=org_headers,
                          json={"status": "active"})

    assert response.status_code == 403


def test_admin_changes_service_status(client, db, admin_headers, make_service):
    service = make_service(status="pending")

    response = client.put(f"{API}/services/{service.id}", headers=admin_headers,
                          json={"status": "active"})

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "active"
    db.expire_all()
    assert db.get(Service, service.id).status == "active"


def test_other_org_cannot_update(client, make_user, make_service):
    service = make_service()
    rival = make_user("org")

    response = client.put(f"{API}/services/{service.id}", headers=auth_headers(rival),
                          json={"price": 1})

    assert response.status_code == 403


def test_delete_deactivates(client, db, org_headers, make_service):
    service = make_service()

    response = client.delete(f"{API}/services/{service.id}", headers=org_headers)

    assert response.status_code == 200
    db.refresh(service)
    assert service.status == "inactive"


# --------------------------------------------------
# Reviews
# --------------------------------------------------
def test_review_updates_rating_and_rejects_duplicates(client, db, user, user_headers, make_user, make_service):
    service = make_service()
    other = make_user("user")

    first = client.post(f"{API}/services/{service.id}/reviews", headers=user_headers,
                        json={"rating": 5, "review": "Fresh and tasty"})
    assert first.status_code == 201
    assert first.json()["data"]["userName"] == user.name

    client.post(f"{API}/services/{service.id}/reviews", headers=auth_headers(other), json={"rating": 2})
    db.refresh(service)
    assert service.rating == Decimal("3.50")
    assert service.review_count == 2

    again = client.post(f"{API}/services/{service.id}/reviews", headers=user_headers, json={"rating": 1})
    assert again.status_code == 409

    listing = client.get(f"{API}/services/{service.id}/reviews").json()
    assert listing["pagination"]["total"] == 2


def test_review_rating_bounds(client, user_headers, make_service):
    service = make_service()

    response = client.post(f"{API}/services/{service.id}/reviews", headers=user_headers, json={"rating": 6})

    assert response.status_code == 400


# --------------------------------------------------
# Booking
# --------------------------------------------------
def test_booking_moves_coins_to_org(client, db, user, org, user_headers, make_service):
    service = make_service(price="100")

    response = client.post(f"{API}/services/{service.id}/book", headers=user_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["walletBalance"] == 400.0
    assert data["transaction"]["type"] == "service_booking"
    assert data["transaction"]["status"] == "completed"
    assert data["service"]["bookings"] == 1

    db.refresh(user)
    db.refresh(org)
    assert user.wallet_balance == Decimal("400.00")
    assert org.wallet_balance == Decimal("100.00")


def test_booking_with_insufficient_balance_changes_nothing(client, db, make_user, make_service):
    poor = make_user("user", balance="30")
    service = make_service(price="100")

    response = client.post(f"{API}/services/{service.id}/book", headers=auth_headers(poor))

    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient wallet balance"

    db.refresh(poor)
    db.refresh(service)
    assert poor.wallet_balance == Decimal("30.00")
    assert service.bookings == 0
    assert db.query(Transaction).count() == 0


def test_inactive_service_cannot_be_booked(client, user_headers, make_service):
    service = make_service(status="inactive")

    response = client.post(f"{API}/services/{service.id}/book", headers=user_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Service is not available for booking"


def test_org_cannot_book(client, org_headers, make_service):
    service = make_service()

    response = client.post(f"{API}/services/{service.id}/book", headers=org_headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Insufficient permissions"


def test_booking_counter_accumulates(client, db, make_user, make_service):
    service = make_service(price="10")
    for _ in range(3):
        buyer = make_user("user", balance="10")
        assert client.post(f"{API}/services/{service.id}/book", headers=auth_headers(buyer)).status_code == 200

    db.refresh(service)
    assert service.bookings == 3
    owner = db.get(User, service.organization_id)
    db.refresh(owner)
    assert owner.wallet_balance == Decimal("30.00")
    assert db.query(Service).count() == 1


def test_booking_unknown_service_is_not_found(client, user_headers):
    response = client.post(f"{API}/services/00000000-0000-0000-0000-000000000000/book",
                           headers=user_headers)

    assert response.status_code == 404
