import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from marketplace.main import app
from marketplace.database import Base, get_db, make_engine
from marketplace.auth import create_access_token
from marketplace.storage import DatabaseStorage


@pytest.fixture
def engine():
    engine_test = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine_test)
    yield engine_test
    Base.metadata.drop_all(bind=engine_test)
    engine_test.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def storage(session_factory):
    db = session_factory()
    try:
        yield DatabaseStorage(db)
    finally:
        db.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user_id: str, **claims) -> dict:
    token = create_access_token({"sub": user_id, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seller(storage):
    return storage.upsert_user({"id": "seller-1", "email": "seller@example.com", "first_name": "Sam"})


@pytest.fixture
def buyer(storage):
    return storage.upsert_user({"id": "buyer-1", "email": "buyer@example.com", "first_name": "Bea"})


@pytest.fixture
def category(storage):
    return storage.create_category({"name": "Electronics", "slug": "electronics", "description": "Phones and gadgets"})


@pytest.fixture
def make_product(storage, seller, category):
    def _make_product(title="Vintage camera", price="50.00", status="active", **fields):
        data = {
            "title": title,
            "description": f"{title} in working order",
            "price": Decimal(price),
            "condition": "good",
            "status": status,
            "seller_id": seller.id,
            "category_id": category.id,
        }
        data.update(fields)
        return storage.create_product(data)
    return _make_product
