URL = "/api/orders/"

BODY = {
    "customerId": "cust-1",
    "items": [{"productId": "A", "quantity": 1, "unitPrice": "10.00"}],
}


def test_body_key_replay_returns_same_order(client):
    body = dict(BODY, idempotencyKey="client-key-1")
    first = client.post(URL, json=body)
    second = client.post(URL, json=body)
    assert first.status_code == 201
    assert second.status_code == 200
    assert second.headers["Idempotent-Replay"] == "true"
    assert second.json()["id"] == first.json()["id"]
    assert client.get(URL).json()["totalElements"] == 1


def test_header_key_takes_precedence_over_body(client):
    first = client.post(URL, json=dict(BODY, idempotencyKey="body-key"), headers={"Idempotency-Key": "hdr-key"})
    # same header, different body key: still the same order
    second = client.post(URL, json=dict(BODY, idempotencyKey="other"), headers={"Idempotency-Key": "hdr-key"})
    # the body key alone was never stored
    third = client.post(URL, json=dict(BODY, idempotencyKey="body-key"))
    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert third.status_code == 201
    assert third.json()["id"] != first.json()["id"]


def test_identical_bodies_without_key_collapse(client):
    first = client.post(URL, json=BODY)
    second = client.post(URL, json=BODY)
    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]


def test_replay_with_different_items_returns_original(client):
    first = client.post(URL, json=BODY, headers={"Idempotency-Key": "k"})
    other = {"customerId": "cust-1", "items": [{"productId": "Z", "quantity": 9, "unitPrice": "1.00"}]}
    second = client.post(URL, json=other, headers={"Idempotency-Key": "k"})
    assert second.status_code == 200
    assert second.json()["items"] == first.json()["items"]
