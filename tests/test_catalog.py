from bson import ObjectId
from conftest import api, bearer, make_category, make_product, register

from storefront.database import ORDERS, PRODUCTS, REVIEWS
from storefront.utils import utcnow


def _product_payload(category_id, **overrides):
    payload = {
        "name": "Mechanical Keyboard",
        "slug": "mechanical-keyboard",
        "description": "Hot-swappable keyboard with tactile switches.",
        "price": 4999,
        "discount_price": 3999,
        "category": str(category_id),
        "sku": "KB-001",
        "stock": 25,
        "specifications": {"Switch": "Brown", "Layout": "TKL"},
        "tags": "keyboard, gaming",
        "features": "RGB backlight",
    }
    payload.update(overrides)
    return payload


def test_admin_creates_product(client, db, admin_headers):
    category = make_category(db)
    res = client.post(api("/products"), json=_product_payload(category), headers=admin_headers)
    assert res.status_code == 201, res.text
    product = res.json()["data"]["product"]
    assert product["discount_percent"] == 20
    assert product["tags"] == ["keyboard", "gaming"]
    assert product["features"] == ["RGB backlight"]
    assert product["category"] == str(category)
    assert product["rating"] == 0 and product["num_reviews"] == 0


def test_non_admin_cannot_create_product(client, db, user_headers):
    res = client.post(api("/products"), json=_product_payload(make_category(db)), headers=user_headers)
    assert res.status_code == 403
    assert res.json()["message"] == "Access denied"


def test_duplicate_slug_is_a_conflict(client, db, admin_headers):
    category = make_category(db)
    assert client.post(api("/products"), json=_product_payload(category), headers=admin_headers).status_code == 201
    res = client.post(api("/products"), json=_product_payload(category, sku="KB-002"), headers=admin_headers)
    assert res.status_code == 409


def test_update_requires_a_field_and_applies_partially(client, db, admin_headers):
    product = make_product(db)
    empty = client.put(api(f"/products/{product['_id']}"), json={}, headers=admin_headers)
    assert empty.status_code == 400
    res = client.put(api(f"/products/{product['_id']}"), json={"stock": 3}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["product"]["stock"] == 3
    assert res.json()["data"]["product"]["name"] == product["name"]


def test_delete_is_soft(client, db, admin_headers):
    product = make_product(db)
    res = client.delete(api(f"/products/{product['_id']}"), headers=admin_headers)
    assert res.status_code == 200
    assert db[PRODUCTS].find_one({"_id": product["_id"]})["is_active"] is False
    listing = client.get(api("/products")).json()["data"]
    assert listing["pagination"]["total"] == 0


def test_listing_filters_sort_and_paginate(client, db):
    category = make_category(db, name="Audio", slug="audio")
    make_product(db, category=category, name="Budget Earbuds", price=999, brand="Tono", tags=["audio"])
    make_product(db, category=category, name="Studio Headphones", price=8999, brand="Tono", tags=["audio"])
    make_product(db, name="Desk Lamp", price=1499, brand="Lumo")
    make_product(db, name="Hidden", price=10, is_active=False)

    res = client.get(api("/products"), params={"category": "audio", "sort": "-price"})
    items = res.json()["data"]["items"]
    assert [p["name"] for p in items] == ["Studio Headphones", "Budget Earbuds"]

    res = client.get(api("/products"), params={"min_price": 1000, "max_price": 5000})
    assert [p["name"] for p in res.json()["data"]["items"]] == ["Desk Lamp"]

    res = client.get(api("/products"), params={"search": "HEADPHONES"})
    assert [p["name"] for p in res.json()["data"]["items"]] == ["Studio Headphones"]

    res = client.get(api("/products"), params={"sort": "price", "limit": 2, "page": 2})
    data = res.json()["data"]
    assert [p["name"] for p in data["items"]] == ["Studio Headphones"]
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}


def test_showcase_lists(client, db):
    make_product(db, name="Star", is_featured=True)
    make_product(db, name="Hot", is_trending=True)
    make_product(db, name="Fresh", is_new=True)
    assert [p["name"] for p in client.get(api("/products/featured")).json()["data"]["items"]] == ["Star"]
    assert [p["name"] for p in client.get(api("/products/trending")).json()["data"]["items"]] == ["Hot"]
    assert [p["name"] for p in client.get(api("/products/new-arrivals")).json()["data"]["items"]] == ["Fresh"]


def test_get_by_id_or_slug_and_related(client, db):
    category = make_category(db)
    main = make_product(db, category=category, slug="the-main-one")
    sibling = make_product(db, category=category)
    make_product(db)

    assert client.get(api("/products/the-main-one")).json()["data"]["product"]["id"] == str(main["_id"])
    assert client.get(api(f"/products/{main['_id']}")).status_code == 200
    assert client.get(api("/products/missing-slug")).status_code == 404

    related = client.get(api(f"/products/{main['_id']}/related")).json()["data"]["items"]
    assert [p["id"] for p in related] == [str(sibling["_id"])]


def test_review_scenario(client, db):
    product = make_product(db)
    token, _ = register(client)

    payload = {"rating": 4, "comment": "Solid build, works as described."}
    res = client.post(api(f"/products/{product['_id']}/reviews"), json=payload, headers=bearer(token))
    assert res.status_code == 201
    assert res.json()["data"]["review"]["is_verified_purchase"] is False

    again = client.post(api(f"/products/{product['_id']}/reviews"), json=payload, headers=bearer(token))
    assert again.status_code == 409
    assert db[REVIEWS].count_documents({"product": product["_id"]}) == 1

    stored = db[PRODUCTS].find_one({"_id": product["_id"]})
    assert stored["rating"] == 4 and stored["num_reviews"] == 1


def test_verified_purchase_and_rating_average(client, db):
    product = make_product(db)
    buyer_token, buyer = register(client)
    other_token, _ = register(client)
    db[ORDERS].insert_one({
        "order_number": "ORD-0000000001",
        "user": ObjectId(buyer["id"]),
        "items": [{"product": product["_id"], "quantity": 1}],
        "order_status": "delivered",
        "created_at": utcnow(),
    })

    res = client.post(api(f"/products/{product['_id']}/reviews"),
                      json={"rating": 5, "comment": "Exactly what I needed."}, headers=bearer(buyer_token))
    assert res.json()["data"]["review"]["is_verified_purchase"] is True
    client.post(api(f"/products/{product['_id']}/reviews"),
                json={"rating": 2, "comment": "Not for me, sadly."}, headers=bearer(other_token))

    stored = db[PRODUCTS].find_one({"_id": product["_id"]})
    assert stored["num_reviews"] == 2
    assert stored["rating"] == 3.5

    reviews = client.get(api(f"/products/{product['_id']}/reviews")).json()["data"]
    assert reviews["pagination"]["total"] == 2
    assert {r["user"]["name"] for r in reviews["items"]} == {"Test Shopper"}


def test_review_validation(client, db, user_headers):
    product = make_product(db)
    res = client.post(api(f"/products/{product['_id']}/reviews"), json={"rating": 6, "comment": "short"},
                      headers=user_headers)
    assert res.status_code == 400


def test_category_lifecycle(client, db, admin_headers):
    res = client.post(api("/categories"), json={"name": "Garden", "slug": "garden"}, headers=admin_headers)
    assert res.status_code == 201
    category_id = res.json()["data"]["category"]["id"]

    assert client.get(api("/categories/garden")).json()["data"]["category"]["id"] == category_id
    assert [c["name"] for c in client.get(api("/categories")).json()["data"]["items"]] == ["Garden"]

    product = make_product(db, category=ObjectId(category_id))
    blocked = client.delete(api(f"/categories/{category_id}"), headers=admin_headers)
    assert blocked.status_code == 409

    db[PRODUCTS].delete_one({"_id": product["_id"]})
    assert client.delete(api(f"/categories/{category_id}"), headers=admin_headers).status_code == 200
    assert client.get(api("/categories/garden")).status_code == 404
