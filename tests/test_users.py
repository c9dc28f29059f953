from conftest import ADMIN_EMAIL, PASSWORD, SHIPPING_ADDRESS, api, bearer, make_product, register

from storefront.database import ADDRESSES


def test_profile_read_and_update(client, user_headers):
    profile = client.get(api("/users/profile"), headers=user_headers).json()["data"]["user"]
    assert profile["name"] == "Test Shopper"
    assert "hashed_password" not in profile

    res = client.put(api("/users/profile"), json={"name": "Renamed Shopper", "phone": "9123456780"},
                     headers=user_headers)
    assert res.status_code == 200
    assert res.json()["data"]["user"]["name"] == "Renamed Shopper"
    assert res.json()["data"]["user"]["phone"] == "9123456780"

    bad = client.put(api("/users/profile"), json={"name": "X", "phone": "12"}, headers=user_headers)
    assert bad.status_code == 400


def test_change_password(client):
    token, user = register(client)
    wrong = client.put(api("/users/change-password"),
                       json={"current_password": "Wrong#1234", "new_password": "Brand#New99"}, headers=bearer(token))
    assert wrong.status_code == 401

    res = client.put(api("/users/change-password"),
                     json={"current_password": PASSWORD, "new_password": "Brand#New99"}, headers=bearer(token))
    assert res.status_code == 200
    assert client.post(api("/auth/login"), json={"email": user["email"], "password": PASSWORD}).status_code == 401
    assert client.post(api("/auth/login"), json={"email": user["email"],
                                                 "password": "Brand#New99"}).status_code == 200


def test_address_book_keeps_one_default(client, db, user_headers):
    home = client.post(api("/users/address"), json={**SHIPPING_ADDRESS, "is_default": True}, headers=user_headers)
    assert home.status_code == 201
    home_id = home.json()["data"]["address"]["id"]

    office = client.post(api("/users/address"), json={**SHIPPING_ADDRESS, "city": "Mysuru", "is_default": True,
                                                      "address_type": "office"}, headers=user_headers)
    office_id = office.json()["data"]["address"]["id"]
    assert db[ADDRESSES].count_documents({"is_default": True}) == 1

    items = client.get(api("/users/address"), headers=user_headers).json()["data"]["items"]
    assert items[0]["id"] == office_id

    res = client.put(api(f"/users/address/{home_id}/default"), headers=user_headers)
    assert res.json()["data"]["address"]["is_default"] is True
    defaults = list(db[ADDRESSES].find({"is_default": True}))
    assert [str(a["_id"]) for a in defaults] == [home_id]

    res = client.put(api(f"/users/address/{office_id}"), json={**SHIPPING_ADDRESS, "city": "Hubballi"},
                     headers=user_headers)
    assert res.json()["data"]["address"]["city"] == "Hubballi"

    assert client.delete(api(f"/users/address/{office_id}"), headers=user_headers).status_code == 200
    assert len(client.get(api("/users/address"), headers=user_headers).json()["data"]["items"]) == 1


def test_addresses_are_private(client, user_headers):
    address = client.post(api("/users/address"), json=SHIPPING_ADDRESS, headers=user_headers).json()["data"]["address"]
    other_token, _ = register(client)
    assert client.delete(api(f"/users/address/{address['id']}"), headers=bearer(other_token)).status_code == 404
    assert client.put(api(f"/users/address/{address['id']}/default"), headers=bearer(other_token)).status_code == 404
    assert client.delete(api("/users/address/not-an-id"), headers=bearer(other_token)).status_code == 404


def test_wishlist(client, db, user_headers):
    product = make_product(db, name="Wanted")
    retired = make_product(db, is_active=False)

    assert client.get(api("/wishlist"), headers=user_headers).json()["data"] == {"items": [], "count": 0}
    client.post(api("/wishlist"), json={"product_id": str(product["_id"])}, headers=user_headers)
    res = client.post(api("/wishlist"), json={"product_id": str(product["_id"])}, headers=user_headers)
    assert res.json()["data"]["count"] == 1
    assert res.json()["data"]["items"][0]["name"] == "Wanted"

    assert client.post(api("/wishlist"), json={"product_id": str(retired["_id"])},
                       headers=user_headers).status_code == 404

    res = client.delete(api(f"/wishlist/{product['_id']}"), headers=user_headers)
    assert res.json()["data"]["count"] == 0


def test_support_contact_mails_the_store(client, mailer):
    res = client.post(api("/support/contact"), json={
        "name": "Curious Customer",
        "email": "curious@example.com",
        "subject": "Delivery time",
        "message": "How long does delivery to Pune usually take?",
        "order_id": "ORD-1234567890",
    })
    assert res.status_code == 201
    assert res.json()["success"] is True
    mail = mailer.sent[-1]
    assert mail["to"] == ADMIN_EMAIL
    assert mail["subject"] == "[Support] Delivery time"
    assert "ORD-1234567890" in mail["html"]

    short = client.post(api("/support/contact"), json={"name": "A", "email": "a@example.com", "subject": "Hi",
                                                      "message": "too short"})
    assert short.status_code == 400
