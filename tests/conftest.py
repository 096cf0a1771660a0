import os

# Must be set before the storefront package creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("RAZORPAY_KEY_ID", None)
os.environ.pop("RAZORPAY_KEY_SECRET", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront import auth, models
from storefront.config import Settings, get_settings
from storefront.database import Base, get_db
from storefront.main import app

RAZORPAY_SECRET = "rzp_secret_for_tests"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-secret",
        ADMIN_EMAILS="boss@example.com, Chief@Example.com",
        RAZORPAY_KEY_ID=None,
        RAZORPAY_KEY_SECRET=None,
    )


@pytest.fixture
def gateway_settings(settings):
    return settings.model_copy(update={
        "RAZORPAY_KEY_ID": "rzp_test_1234567890",
        "RAZORPAY_KEY_SECRET": RAZORPAY_SECRET,
    })


def _client(session_factory, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    return TestClient(app)


@pytest.fixture
def client(session_factory, settings):
    yield _client(session_factory, settings)
    app.dependency_overrides.clear()


@pytest.fixture
def gateway_client(session_factory, gateway_settings):
    yield _client(session_factory, gateway_settings)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(email="alice@example.com", name="Alice", role="user", password_hash="not-a-real-hash"):
        user = models.User(name=name, email=email, password_hash=password_hash, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def headers_for(settings):
    def _headers_for(user):
        token = auth.create_access_token({"sub": user.id, "email": user.email}, settings)
        return {"Authorization": f"Bearer {token}"}
    return _headers_for


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def user_headers(user, headers_for):
    return headers_for(user)


@pytest.fixture
def admin_headers(admin, headers_for):
    return headers_for(admin)


@pytest.fixture
def order_payload():
    return {
        "items": [
            {"name": "Tomatoes", "price": 40, "quantity": 2, "unit": "kg"},
            {"name": "Basil", "price": 15.5, "unit": "bunch"},
        ],
        "pricing": {"subtotal": 95.5, "deliveryFee": 20, "total": 115.5},
        "deliverySlot": "Tomorrow 9-11 AM",
        "payment": {"method": "upi", "upiId": "alice@upi", "status": "pending"},
        "address": {"name": "Alice", "phone": "9876543210", "city": "Pune", "pincode": "411001"},
    }
