from conftest import api, make_product

from storefront.database import CARTS, PRODUCTS


def _cart(res):
    return res.json()["data"]["cart"]


def _assert_totals(cart):
    assert cart["total_items"] == sum(i["quantity"] for i in cart["items"])
    assert cart["total_amount"] == round(sum(i["price"] * i["quantity"] for i in cart["items"]), 2)


def test_empty_cart_is_created_on_read(client, user_headers):
    cart = _cart(client.get(api("/cart"), headers=user_headers))
    assert cart["items"] == []
    assert cart["total_amount"] == 0 and cart["total_items"] == 0


def test_add_merges_lines_and_uses_discount_price(client, db, user_headers):
    product = make_product(db, price=500, discount_price=450, stock=5)
    res = client.post(api("/cart/items"), json={"product_id": str(product["_id"]), "quantity": 2},
                      headers=user_headers)
    assert res.status_code == 201
    res = client.post(api("/cart/items"), json={"product_id": str(product["_id"])}, headers=user_headers)
    cart = _cart(res)
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3
    assert cart["items"][0]["price"] == 450
    assert cart["items"][0]["product"]["name"] == product["name"]
    assert cart["total_amount"] == 1350
    _assert_totals(cart)


def test_add_beyond_stock_leaves_cart_unchanged(client, db, user_headers):
    product = make_product(db, stock=3)
    client.post(api("/cart/items"), json={"product_id": str(product["_id"]), "quantity": 2}, headers=user_headers)
    before = db[CARTS].find_one({})

    res = client.post(api("/cart/items"), json={"product_id": str(product["_id"]), "quantity": 2},
                      headers=user_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient stock"
    after = db[CARTS].find_one({})
    assert after["items"] == before["items"]
    assert after["total_amount"] == before["total_amount"]


def test_unavailable_products_are_rejected(client, db, user_headers):
    inactive = make_product(db, is_active=False)
    for product_id in (str(inactive["_id"]), "64b7f0000000000000000000", "not-an-id"):
        res = client.post(api("/cart/items"), json={"product_id": product_id, "quantity": 1}, headers=user_headers)
        assert res.status_code == 404
        assert res.json()["message"] == "Product not available"


def test_update_remove_and_clear(client, db, user_headers):
    first = make_product(db, price=100, stock=10)
    second = make_product(db, price=250, stock=10)
    client.post(api("/cart/items"), json={"product_id": str(first["_id"]), "quantity": 1}, headers=user_headers)
    cart = _cart(client.post(api("/cart/items"), json={"product_id": str(second["_id"]), "quantity": 2},
                             headers=user_headers))
    first_line, second_line = cart["items"]

    cart = _cart(client.put(api(f"/cart/items/{first_line['id']}"), json={"quantity": 4}, headers=user_headers))
    assert cart["total_amount"] == 900
    _assert_totals(cart)

    too_many = client.put(api(f"/cart/items/{first_line['id']}"), json={"quantity": 11}, headers=user_headers)
    assert too_many.status_code == 400

    cart = _cart(client.put(api(f"/cart/items/{first_line['id']}"), json={"quantity": 0}, headers=user_headers))
    assert [i["id"] for i in cart["items"]] == [second_line["id"]]
    _assert_totals(cart)

    cart = _cart(client.delete(api(f"/cart/items/{second_line['id']}"), headers=user_headers))
    assert cart["items"] == [] and cart["total_amount"] == 0

    missing = client.delete(api(f"/cart/items/{second_line['id']}"), headers=user_headers)
    assert missing.status_code == 404

    client.post(api("/cart/items"), json={"product_id": str(first["_id"]), "quantity": 1}, headers=user_headers)
    cart = _cart(client.delete(api("/cart/clear"), headers=user_headers))
    assert cart["items"] == [] and cart["total_items"] == 0


def test_cart_requires_auth(client):
    assert client.get(api("/cart")).status_code == 401


def test_update_rejects_line_of_retired_product(client, db, user_headers):
    product = make_product(db, price=200, stock=10)
    cart = _cart(client.post(api("/cart/items"), json={"product_id": str(product["_id"]), "quantity": 1},
                             headers=user_headers))
    line_id = cart["items"][0]["id"]
    db[PRODUCTS].update_one({"_id": product["_id"]}, {"$set": {"is_active": False}})

    res = client.put(api(f"/cart/items/{line_id}"), json={"quantity": 3}, headers=user_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Product not available"
    assert db[CARTS].find_one({})["items"][0]["quantity"] == 1
