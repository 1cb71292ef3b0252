"""
Shared test configuration.
Every test gets a fresh in-memory SQLite database wired into the app through
dependency overrides, plus a demo-mode Razorpay client with known secrets.
"""

import os
from decimal import Decimal

# settings are cached at import time, so the environment must be in place first
TEST_ENV = {
    "APP_ENV": "test",
    "LOG_LEVEL": "WARNING",
    "DATABASE_URL": "sqlite://",
    "JWT_SECRET": "test-jwt-secret",
    "RAZORPAY_KEY_ID": "",
    "RAZORPAY_KEY_SECRET": "test_key_secret",
    "RAZORPAY_WEBHOOK_SECRET": "test_webhook_secret",
    "SUPABASE_URL": "",
    "SUPABASE_SERVICE_ROLE_KEY": "",
    "RATE_LIMIT_MAX_REQUESTS": "0",
}
os.environ.update(TEST_ENV)

import bcrypt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from support import KEY_SECRET, PASSWORD, WEBHOOK_SECRET, auth_headers  # noqa: E402

from ertha_exchange.database import Base, get_db  # noqa: E402
from ertha_exchange.integrations.razorpay_client import RazorpayClient, get_razorpay_client  # noqa: E402
from ertha_exchange.main import app  # noqa: E402
from ertha_exchange.models import Service, User  # noqa: E402
from ertha_exchange.utils.security import hash_password  # noqa: E402


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Minimum bcrypt cost keeps hashing out of the test runtime."""
    real_gensalt = bcrypt.gensalt
    monkeypatch.setattr(bcrypt, "gensalt", lambda rounds=4, prefix=b"2b": real_gensalt(4, prefix))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway() -> RazorpayClient:
    return RazorpayClient(
        key_id="",
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_razorpay_client] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# --------------------------------------------------
# Accounts
# --------------------------------------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "user", balance: str = "0", status: str = "active",
              email: str = None, name: str = None) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@example.com",
            password=hash_password(PASSWORD),
            name=name or f"{role.title()} {counter['n']}",
            role=role,
            status=status,
            wallet_balance=Decimal(balance),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user("user", balance="500")


@pytest.fixture
def org(make_user):
    return make_user("org", name="Green Org")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def org_headers(org):
    return auth_headers(org)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


# --------------------------------------------------
# Catalogue
# --------------------------------------------------
@pytest.fixture
def make_service(db, org):
    def _make(price: str = "100", status: str = "active", owner: User = None,
              title: str = "Organic veggie box", category: str = "organic-products") -> Service:
        service = Service(
            title=title,
            description="Weekly box of seasonal organic vegetables from local farms.",
            price=Decimal(price),
            category=category,
            organization_id=(owner or org).id,
            status=status,
            features=["weekly delivery"],
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    return _make

