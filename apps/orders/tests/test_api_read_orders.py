from uuid import uuid4

URL = "/api/orders/"


def _create(client, customer="cust-1", product="A"):
    r = client.post(URL, json={
        "customerId": customer,
        "items": [{"productId": product, "quantity": 1, "unitPrice": "4.00"}],
    })
    assert r.status_code == 201, r.text
    return r.json()


def test_get_order(client):
    created = _create(client)
    r = client.get(f"{URL}{created['id']}")
    assert r.status_code == 200
    assert r.json() == created


def test_get_missing_order_is_404(client):
    missing = uuid4()
    r = client.get(f"{URL}{missing}")
    assert r.status_code == 404
    body = r.json()
    assert body["code"] == "ORDER_NOT_FOUND"
    assert body["message"] == f"Order {missing} not found"


def test_get_with_malformed_id_is_400(client):
    r = client.get(f"{URL}not-a-uuid")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_list_orders_pages_newest_first(client):
    ids = [_create(client, product=f"P{i}")["id"] for i in range(3)]
    r = client.get(URL, params={"page": 0, "size": 2})
    assert r.status_code == 200
    body = r.json()
    assert body["totalElements"] == 3
    assert body["totalPages"] == 2
    assert body["page"] == 0 and body["size"] == 2
    assert [o["id"] for o in body["results"]] == [ids[2], ids[1]]

    rest = client.get(URL, params={"page": 1, "size": 2}).json()
    assert [o["id"] for o in rest["results"]] == [ids[0]]


def test_list_orders_by_status(client):
    _create(client)
    assert client.get(URL, params={"status": "PENDING"}).json()["totalElements"] == 1
    assert client.get(URL, params={"status": "SHIPPED"}).json()["totalElements"] == 0


def test_list_orders_rejects_bad_query(client):
    assert client.get(URL, params={"status": "LOST"}).status_code == 400
    assert client.get(URL, params={"page": -1}).status_code == 400
    assert client.get(URL, params={"size": 0}).status_code == 400


def test_list_customer_orders(client):
    _create(client, customer="alice", product="A")
    _create(client, customer="alice", product="B")
    _create(client, customer="bob")
    body = client.get(f"{URL}customer/alice").json()
    assert body["totalElements"] == 2
    assert {o["customerId"] for o in body["results"]} == {"alice"}
    assert client.get(f"{URL}customer/nobody").json()["results"] == []
