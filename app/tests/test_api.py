from decimal import Decimal

from sqlalchemy.exc import OperationalError

from marketplace.main import app
from marketplace.storage import DatabaseStorage, get_storage
from conftest import auth_headers


def test_read_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"

def test_list_categories_sorted_by_name(client, storage):
    storage.create_category({"name": "Other", "slug": "other"})
    storage.create_category({"name": "Books & Media", "slug": "books-media"})

    response = client.get("/api/categories")
    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["Books & Media", "Other"]

def test_current_user_requires_token(client):
    response = client.get("/api/auth/user")
    assert response.status_code == 401

def test_invalid_token_rejected(client):
    response = client.get("/api/auth/user", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

def test_first_login_upserts_user_from_claims(client, storage):
    headers = auth_headers("new-user", email="new@example.com", first_name="Nia")

    response = client.get("/api/auth/user", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == "new-user"
    assert data["email"] == "new@example.com"
    assert data["firstName"] == "Nia"
    assert storage.get_user("new-user") is not None

def test_update_profile_is_partial(client, buyer):
    headers = auth_headers(buyer.id)

    response = client.patch(
        "/api/auth/user",
        json={"address": "1 Market St", "city": "Springfield", "zipCode": "12345"},
        headers=headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["address"] == "1 Market St"
    assert data["zipCode"] == "12345"
    assert data["firstName"] == "Bea"

def test_update_profile_rejects_bad_email(client, buyer):
    response = client.patch("/api/auth/user", json={"email": "nope"}, headers=auth_headers(buyer.id))
    assert response.status_code == 422

def test_create_product(client, seller, category):
    product_data = {
        "title": "Road bike",
        "description": "Steel frame, 56cm",
        "price": "250.00",
        "categoryId": category.id,
        "condition": "excellent",
        "imageUrl": "https://img.example.com/bike.jpg",
    }
    response = client.post("/api/products", json=product_data, headers=auth_headers(seller.id))
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Road bike"
    assert Decimal(data["price"]) == Decimal("250.00")
    assert data["sellerId"] == seller.id
    assert data["status"] == "active"
    assert data["views"] == 0
    assert "id" in data

def test_create_product_validates_body(client, seller, category):
    headers = auth_headers(seller.id)
    base = {"title": "Lamp", "price": "10.00", "categoryId": category.id}

    assert client.post("/api/products", json={**base, "price": "-1"}, headers=headers).status_code == 422
    assert client.post("/api/products", json={**base, "condition": "broken"}, headers=headers).status_code == 422
    assert client.post("/api/products", json={**base, "status": "sold"}, headers=headers).status_code == 422
    assert client.post("/api/products", json={"title": "Lamp"}, headers=headers).status_code == 422

def test_create_product_requires_auth(client, category):
    response = client.post("/api/products", json={"title": "Lamp", "price": "10.00", "categoryId": category.id})
    assert response.status_code == 401

def test_list_products_only_active(client, make_product):
    active = make_product("Phone")
    make_product("Draft phone", status="draft")
    make_product("Sold phone", status="sold")

    response = client.get("/api/products")
    assert response.status_code == 200
    products = response.json()
    assert [p["id"] for p in products] == [active.id]
    assert products[0]["seller"]["id"] == active.seller_id
    assert products[0]["category"]["slug"] == "electronics"

def test_list_products_newest_first(client, make_product):
    older = make_product("Older")
    newer = make_product("Newer")

    ids = [p["id"] for p in client.get("/api/products").json()]
    assert ids == [newer.id, older.id]

def test_list_products_filters(client, storage, make_product):
    books = storage.create_category({"name": "Books & Media", "slug": "books-media"})
    phone = make_product("Smartphone")
    novel = make_product("Paperback novel", category_id=books.id)
    make_product("Phone case")

    response = client.get(f"/api/products?category={books.id}")
    assert [p["id"] for p in response.json()] == [novel.id]

    response = client.get("/api/products?search=SMART")
    assert [p["id"] for p in response.json()] == [phone.id]

    response = client.get(f"/api/products?category={books.id}&search=phone")
    assert response.json() == []

def test_get_product_counts_views(client, make_product):
    product = make_product()

    first = client.get(f"/api/products/{product.id}")
    second = client.get(f"/api/products/{product.id}")
    assert first.status_code == 200
    assert first.json()["seller"]["id"] == product.seller_id
    assert second.json()["views"] == first.json()["views"] + 1

def test_get_product_not_found(client):
    response = client.get("/api/products/missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Product not found"

def test_user_products_include_drafts(client, seller, make_product):
    make_product("Listed")
    make_product("Unlisted", status="draft")

    response = client.get(f"/api/products/user/{seller.id}", headers=auth_headers(seller.id))
    assert response.status_code == 200
    assert {p["status"] for p in response.json()} == {"active", "draft"}
    assert all("category" in p for p in response.json())

def test_user_products_of_someone_else_forbidden(client, seller, buyer):
    response = client.get(f"/api/products/user/{seller.id}", headers=auth_headers(buyer.id))
    assert response.status_code == 403

def test_owner_updates_product(client, seller, make_product):
    product = make_product()

    response = client.patch(
        f"/api/products/{product.id}",
        json={"price": "45.00", "status": "draft"},
        headers=auth_headers(seller.id),
    )
    assert response.status_code == 200
    assert Decimal(response.json()["price"]) == Decimal("45.00")
    assert response.json()["status"] == "draft"
    assert response.json()["title"] == "Vintage camera"

def test_non_owner_cannot_update_product(client, storage, buyer, make_product):
    product = make_product()

    response = client.patch(f"/api/products/{product.id}", json={"price": "1.00"}, headers=auth_headers(buyer.id))
    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized"

    storage.db.expire_all()
    assert storage.get_product(product.id).price == Decimal("50.00")

def test_non_owner_cannot_delete_product(client, storage, buyer, make_product):
    product = make_product()

    response = client.delete(f"/api/products/{product.id}", headers=auth_headers(buyer.id))
    assert response.status_code == 403
    assert storage.get_product(product.id) is not None

def test_owner_deletes_product(client, storage, seller, buyer, make_product):
    product_id = make_product().id
    buyer_id = buyer.id
    storage.add_to_cart(buyer_id, product_id, 1)

    response = client.delete(f"/api/products/{product_id}", headers=auth_headers(seller.id))
    assert response.status_code == 204

    storage.db.expire_all()
    assert storage.get_product(product_id) is None
    assert storage.get_cart_items(buyer_id) == []

def test_sold_listing_cannot_be_reverted_or_deleted(client, seller, make_product):
    product = make_product(status="sold")
    headers = auth_headers(seller.id)

    response = client.patch(f"/api/products/{product.id}", json={"status": "active"}, headers=headers)
    assert response.status_code == 409

    response = client.delete(f"/api/products/{product.id}", headers=headers)
    assert response.status_code == 409

def test_storage_failure_returns_generic_error(client):
    class BrokenStorage(DatabaseStorage):
        def get_products(self, category_id=None, search=None):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

    app.dependency_overrides[get_storage] = lambda: BrokenStorage(None)
    try:
        response = client.get("/api/products")
    finally:
        del app.dependency_overrides[get_storage]

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to fetch products"}

def test_update_product_rejects_explicit_nulls(client, storage, seller, make_product):
    product = make_product()
    headers = auth_headers(seller.id)

    for field in ("title", "price", "categoryId", "condition", "status"):
        response = client.patch(f"/api/products/{product.id}", json={field: None}, headers=headers)
        assert response.status_code == 422, field

    storage.db.expire_all()
    unchanged = storage.get_product(product.id)
    assert unchanged.title == "Vintage camera"
    assert unchanged.price == Decimal("50.00")

def test_update_product_allows_clearing_optional_fields(client, seller, make_product):
    product = make_product()

    response = client.patch(f"/api/products/{product.id}", json={"description": None}, headers=auth_headers(seller.id))
    assert response.status_code == 200
    assert response.json()["description"] is None

def test_first_login_with_taken_email_returns_json_error(client, storage, buyer):
    headers = auth_headers("newcomer", email=buyer.email)

    response = client.get("/api/auth/user", headers=headers)
    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to fetch user"}

    # The failed insert is rolled back; the existing account still works
    assert storage.get_user("newcomer") is None
    assert client.get("/api/auth/user", headers=auth_headers(buyer.id)).status_code == 200

def test_create_product_with_unknown_category(client, storage, seller):
    product_data = {"title": "Lamp", "price": "10.00", "categoryId": "no-such-category"}

    response = client.post("/api/products", json=product_data, headers=auth_headers(seller.id))
    assert response.status_code == 400
    assert response.json()["detail"] == "Category no-such-category not found"
    assert storage.get_products_by_user_id(seller.id) == []

def test_update_product_to_unknown_category(client, storage, seller, make_product):
    product = make_product()
    original_category_id = product.category_id

    response = client.patch(
        f"/api/products/{product.id}",
        json={"categoryId": "no-such-category"},
        headers=auth_headers(seller.id),
    )
    assert response.status_code == 400

    storage.db.expire_all()
    assert storage.get_product(product.id).category_id == original_category_id
