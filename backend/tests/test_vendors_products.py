def _create_product(client, seller, name="Iced Latte", price=3.5, category="drinks"):
    res = client.post(
        f"/api/vendors/{seller.vendor_id}/products",
        json={"name": name, "price": price, "category": category, "description": f"Fresh {name.lower()}"},
        headers=seller.headers,
    )
    assert res.status_code == 201
    return res.json()


def test_create_vendor_once(client, make_user):
    user = make_user("alice@campus.edu")

    assert client.get("/api/vendors/check", headers=user.headers).json() == {"is_vendor": False, "vendor": None}

    res = client.post(
        "/api/vendors/create",
        json={"business_name": "Alice's Notes", "categories": ["books"], "location": "Library"},
        headers=user.headers,
    )
    assert res.status_code == 201
    vendor_id = res.json()["vendor"]["id"]

    check = client.get("/api/vendors/check", headers=user.headers).json()
    assert check["is_vendor"] is True
    assert check["vendor"]["id"] == vendor_id

    res = client.post("/api/vendors/create", json={"business_name": "Again"}, headers=user.headers)
    assert res.status_code == 400


def test_vendor_profile_is_owner_only(client, make_user):
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    other = make_user("bob@campus.edu")

    res = client.patch(
        f"/api/vendors/{seller.vendor_id}/profile", json={"location": "North Quad"}, headers=seller.headers
    )
    assert res.status_code == 200
    assert res.json()["location"] == "North Quad"

    res = client.patch(f"/api/vendors/{seller.vendor_id}/profile", json={"location": "Nope"}, headers=other.headers)
    assert res.status_code == 401

    assert client.get("/api/vendors/9999").status_code == 404
    assert client.get(f"/api/vendors/{seller.vendor_id}").json()["location"] == "North Quad"


def test_product_crud(client, make_user):
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    other_seller = make_user("rival@campus.edu", vendor_name="Bagel Stand")

    product = _create_product(client, seller)
    path = f"/api/vendors/{seller.vendor_id}/products/{product['id']}"

    assert client.get(path).json()["name"] == "Iced Latte"
    assert client.patch(path, json={"name": "Hot Latte"}, headers=other_seller.headers).status_code == 401

    res = client.patch(path, json={"name": "Hot Latte"}, headers=seller.headers)
    assert res.json()["name"] == "Hot Latte"

    # product ids are scoped to their vendor
    assert client.get(f"/api/vendors/{other_seller.vendor_id}/products/{product['id']}").status_code == 404

    assert client.delete(path, headers=seller.headers).json() == {"success": True}
    assert client.get(path).status_code == 404


def test_only_vendors_create_products_from_catalogue(client, make_user):
    buyer = make_user("buyer@campus.edu")
    res = client.post("/api/products", json={"name": "Bike", "price": 40}, headers=buyer.headers)
    assert res.status_code == 403


def test_catalogue_search_and_reviews(client, make_user):
    seller = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    buyer = make_user("buyer@campus.edu", first_name="Bea")
    latte = _create_product(client, seller, "Iced Latte", category="drinks")
    _create_product(client, seller, "Blueberry Muffin", category="food")

    products = client.get("/api/products", params={"category": "drinks"}).json()["products"]
    assert [p["name"] for p in products] == ["Iced Latte"]
    assert products[0]["vendor_name"] == "Quad Coffee"
    assert products[0]["review_count"] == 0

    products = client.get("/api/products", params={"search": "muffin"}).json()["products"]
    assert [p["name"] for p in products] == ["Blueberry Muffin"]

    review_path = f"/api/products/{latte['id']}/reviews"
    res = client.post(review_path, json={"rating": 4, "comment": "Good"}, headers=buyer.headers)
    assert res.status_code == 201
    assert res.json()["user_name"] == "Bea User"

    assert client.post(review_path, json={"rating": 5}, headers=buyer.headers).status_code == 400
    assert client.post(review_path, json={"rating": 6}, headers=buyer.headers).status_code == 422
    assert client.post("/api/products/9999/reviews", json={"rating": 3}, headers=buyer.headers).status_code == 404

    reviews = client.get(review_path).json()
    assert [r["rating"] for r in reviews] == [4]

    products = client.get(f"/api/vendors/{seller.vendor_id}/products").json()["products"]
    rated = next(p for p in products if p["id"] == latte["id"])
    assert rated["average_rating"] == 4.0
    assert rated["review_count"] == 1


def test_vendor_filter(client, make_user):
    coffee = make_user("seller@campus.edu", vendor_name="Quad Coffee")
    books = make_user("books@campus.edu", vendor_name="Used Books")
    buyer = make_user("buyer@campus.edu")

    client.patch(
        f"/api/vendors/{coffee.vendor_id}/profile",
        json={"categories": ["food", "drinks"], "location": "North Quad"},
        headers=coffee.headers,
    )
    client.patch(
        f"/api/vendors/{books.vendor_id}/profile",
        json={"categories": ["books"], "location": "Library"},
        headers=books.headers,
    )
    latte = _create_product(client, coffee)
    client.post(f"/api/products/{latte['id']}/reviews", json={"rating": 5}, headers=buyer.headers)

    names = lambda res: [v["business_name"] for v in res.json()]

    assert names(client.get("/api/vendors/filter")) == ["Quad Coffee", "Used Books"]
    assert names(client.get("/api/vendors/filter", params={"q": "book"})) == ["Used Books"]
    assert names(client.get("/api/vendors/filter", params={"location": "quad"})) == ["Quad Coffee"]
    assert names(client.get("/api/vendors/filter", params={"category": "drinks"})) == ["Quad Coffee"]

    res = client.get("/api/vendors/filter", params={"min_rating": 4.5})
    assert names(res) == ["Quad Coffee"]
    assert res.json()[0]["rating"] == 5.0
