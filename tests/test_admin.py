from conftest import PASSWORD, SHIPPING_ADDRESS, api, bearer, make_product, register

from storefront.database import COUPONS, ORDERS, PRODUCTS, USERS


def _paid_order(client, db, headers, product, quantity=1):
    res = client.post(api("/orders"), json={
        "items": [{"product_id": str(product["_id"]), "quantity": quantity}],
        "shipping_address": SHIPPING_ADDRESS,
        "payment_method": "razorpay",
    }, headers=headers)
    order = res.json()["data"]["order"]
    db[ORDERS].update_one({"order_number": order["order_number"]}, {"$set": {"payment_status": "completed"}})
    return order


def test_admin_routes_require_admin(client, user_headers):
    assert client.get(api("/admin/dashboard")).status_code == 401
    assert client.get(api("/admin/dashboard"), headers=user_headers).status_code == 403


def test_dashboard(client, db, user_headers, admin_headers):
    popular = make_product(db, name="Popular", price=1200, stock=10)
    scarce = make_product(db, name="Scarce", price=100, stock=3)
    first = _paid_order(client, db, user_headers, popular, quantity=2)
    client.post(api("/orders"), json={
        "items": [{"product_id": str(scarce["_id"]), "quantity": 1}],
        "shipping_address": SHIPPING_ADDRESS,
        "payment_method": "cod",
    }, headers=user_headers)

    data = client.get(api("/admin/dashboard"), headers=admin_headers).json()["data"]
    assert data["totals"]["users"] == 2
    assert data["totals"]["products"] == 2
    assert data["totals"]["orders"] == 2
    assert data["totals"]["delivered_orders"] == 0
    assert data["totals"]["revenue"] == first["total_amount"]
    assert len(data["recent_orders"]) == 2
    assert data["recent_orders"][0]["user"]["name"] == "Test Shopper"
    assert [p["name"] for p in data["low_stock_products"]] == ["Scarce"]
    assert data["top_products"][0]["name"] == "Popular"


def test_analytics(client, db, user_headers, admin_headers):
    product = make_product(db, name="Lamp", price=500)
    first = _paid_order(client, db, user_headers, product, quantity=2)
    second = _paid_order(client, db, user_headers, product, quantity=1)

    data = client.get(api("/admin/analytics"), headers=admin_headers).json()["data"]
    assert len(data["sales_by_month"]) == 1
    month = data["sales_by_month"][0]
    assert month["orders"] == 2
    assert month["total"] == round(first["total_amount"] + second["total_amount"], 2)

    performance = data["product_performance"]
    assert len(performance) == 1
    assert performance[0]["name"] == "Lamp"
    assert performance[0]["total_sold"] == 3
    assert performance[0]["revenue"] == 1500


def test_users_list_role_and_block(client, db, admin_headers):
    token, user = register(client, email="member@example.com", name="Member")

    listing = client.get(api("/admin/users"), params={"search": "member"}, headers=admin_headers).json()["data"]
    assert [u["email"] for u in listing["items"]] == ["member@example.com"]
    assert "hashed_password" not in listing["items"][0]
    admins = client.get(api("/admin/users"), params={"role": "admin"}, headers=admin_headers).json()["data"]
    assert admins["pagination"]["total"] == 1

    res = client.put(api(f"/admin/users/{user['id']}/role"), json={"role": "admin"}, headers=admin_headers)
    assert res.json()["data"]["user"]["role"] == "admin"
    assert client.put(api(f"/admin/users/{user['id']}/role"), json={"role": "owner"},
                      headers=admin_headers).status_code == 400

    res = client.put(api(f"/admin/users/{user['id']}/block"), json={"is_blocked": True}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["message"] == "User blocked successfully"
    assert "refresh_token" not in db[USERS].find_one({"email": "member@example.com"})
    assert client.get(api("/auth/me"), headers=bearer(token)).status_code == 403
    assert client.post(api("/auth/login"), json={"email": "member@example.com",
                                                 "password": PASSWORD}).status_code == 403

    client.put(api(f"/admin/users/{user['id']}/block"), json={"is_blocked": False}, headers=admin_headers)
    assert client.get(api("/auth/me"), headers=bearer(token)).status_code == 200

    missing = client.put(api("/admin/users/64b7f0000000000000000000/block"), json={"is_blocked": True},
                         headers=admin_headers)
    assert missing.status_code == 404


def test_admin_product_listing(client, db, admin_headers):
    make_product(db, name="Visible Lamp", sku="LAMP-1", tags=["lighting"])
    make_product(db, name="Retired Lamp", is_active=False)
    make_product(db, name="Star Chair", is_featured=True)

    def names(**params):
        data = client.get(api("/admin/products"), params=params, headers=admin_headers).json()["data"]
        return sorted(p["name"] for p in data["items"])

    assert names() == ["Retired Lamp", "Star Chair", "Visible Lamp"]
    assert names(status="inactive") == ["Retired Lamp"]
    assert names(status="featured") == ["Star Chair"]
    assert names(search="lamp-1") == ["Visible Lamp"]
    assert names(tag="lighting") == ["Visible Lamp"]

    item = client.get(api("/admin/products"), params={"search": "Star"}, headers=admin_headers).json()["data"]
    assert item["items"][0]["category"]["name"].startswith("Category")


def test_seed_runs_once(client, db, admin_headers):
    res = client.post(api("/admin/seed"), headers=admin_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data == {"seeded": True, "categories": 3, "products": 6, "coupons": 3}
    assert db[COUPONS].find_one({"code": "WELCOME10"})["usage_count"] == 0
    seeded = db[PRODUCTS].find_one({})
    assert seeded["discount_price"] == round(seeded["price"] * 0.9)

    again = client.post(api("/admin/seed"), headers=admin_headers)
    assert again.json()["data"] == {"seeded": False}
    assert again.json()["message"] == "Products already exist"
    assert db[PRODUCTS].count_documents({}) == 6
