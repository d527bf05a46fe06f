from breakfast_api.models import Product


def test_restock_request_lifecycle(client, owner, admin, products, auth_headers, db_session):
    _, juice = products

    r = client.post(
        "/restock/request",
        json={"productId": juice.id, "requestedQuantity": 12, "reason": "Weekend rush"},
        headers=auth_headers(owner),
    )
    assert r.status_code == 201, r.text
    request = r.json()["request"]
    assert request["status"] == "pending"
    assert request["currentQuantity"] == 8
    assert request["reason"] == "Weekend rush"

    r = client.get("/restock/outlet-requests", headers=auth_headers(owner))
    assert [q["id"] for q in r.json()["requests"]] == [request["id"]]

    r = client.put(
        f"/restock/process/{request['id']}",
        json={"status": "approved", "adminNote": "ok"},
        headers=auth_headers(admin),
    )
    assert r.status_code == 200, r.text
    processed = r.json()["request"]
    assert processed["status"] == "approved"
    assert processed["processedBy"] == admin.id
    assert processed["product"]["stock"] == 20

    # Processed exactly once
    r = client.put(f"/restock/process/{request['id']}", json={"status": "approved"}, headers=auth_headers(admin))
    assert r.status_code == 409
    assert db_session.query(Product.stock).filter(Product.id == juice.id).scalar() == 20


def test_rejection_leaves_stock_alone(client, owner, admin, products, auth_headers, db_session):
    croissant, _ = products
    r = client.post(
        "/restock/request", json={"productId": croissant.id, "requestedQuantity": 5}, headers=auth_headers(owner),
    )
    request_id = r.json()["request"]["id"]
    assert r.json()["request"]["reason"] == "Stock replenishment"

    r = client.put(f"/restock/process/{request_id}", json={"status": "rejected"}, headers=auth_headers(admin))
    assert r.json()["request"]["status"] == "rejected"
    assert db_session.query(Product.stock).filter(Product.id == croissant.id).scalar() == 20

    r = client.get("/restock/all", params={"status": "rejected"}, headers=auth_headers(admin))
    assert [q["id"] for q in r.json()["requests"]] == [request_id]


def test_restock_validation_and_roles(client, owner, admin, customer, products, auth_headers):
    croissant, _ = products
    body = {"productId": croissant.id, "requestedQuantity": 0}
    assert client.post("/restock/request", json=body, headers=auth_headers(owner)).status_code == 400
    body["requestedQuantity"] = 3
    assert client.post("/restock/request", json=body, headers=auth_headers(customer)).status_code == 403
    body["productId"] = 9999
    assert client.post("/restock/request", json=body, headers=auth_headers(owner)).status_code == 404

    assert client.get("/restock/all", headers=auth_headers(owner)).status_code == 403
    assert client.put("/restock/process/1", json={"status": "approved"}, headers=auth_headers(owner)).status_code == 403
    r = client.put("/restock/process/1", json={"status": "maybe"}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert client.put("/restock/process/9999", json={"status": "approved"}, headers=auth_headers(admin)).status_code == 404
