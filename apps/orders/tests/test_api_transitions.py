URL = "/api/orders/"


def _create(client):
    r = client.post(URL, json={
        "customerId": "cust-1",
        "items": [
            {"productId": "A", "quantity": 2, "unitPrice": "10.50"},
            {"productId": "B", "quantity": 1, "unitPrice": "5.00"},
        ],
    })
    assert r.status_code == 201, r.text
    return r.json()


def _patch(client, order_id, status):
    return client.patch(f"{URL}{order_id}/status", json={"status": status})


def test_manual_update_from_pending_is_409(client):
    order = _create(client)
    r = _patch(client, order["id"], "PROCESSING")
    assert r.status_code == 409
    assert r.json()["code"] == "CONFLICT"
    assert r.json()["message"] == "Cannot manually update status from PENDING"


def test_lifecycle_after_promotion(client):
    order = _create(client)
    assert client.app.state.manager.promote_pending_to_processing() == 1
    assert client.get(f"{URL}{order['id']}").json()["status"] == "PROCESSING"

    skip = _patch(client, order["id"], "DELIVERED")
    assert skip.status_code == 409
    assert skip.json()["message"] == "Only allowed transition from PROCESSING is to SHIPPED"

    shipped = _patch(client, order["id"], "SHIPPED")
    assert shipped.status_code == 200
    assert shipped.json()["status"] == "SHIPPED"
    delivered = _patch(client, order["id"], "DELIVERED")
    assert delivered.json()["status"] == "DELIVERED"

    again = _patch(client, order["id"], "DELIVERED")
    assert again.status_code == 409
    assert again.json()["message"] == "Order already delivered"


def test_update_with_unknown_status_is_400(client):
    order = _create(client)
    r = _patch(client, order["id"], "LOST")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_cancel_pending_order(client):
    order = _create(client)
    assert order["totalAmount"] == "26.00"
    r = client.post(f"{URL}{order['id']}/cancel")
    assert r.status_code == 200
    body = r.json()
    assert body["canceled"] is True
    assert body["canceledAt"] is not None
    assert body["status"] == "PENDING"

    again = client.post(f"{URL}{order['id']}/cancel")
    assert again.status_code == 409
    assert again.json()["message"] == "Order already canceled"

    assert _patch(client, order["id"], "SHIPPED").json()["message"] == "Order has been canceled"


def test_canceled_order_is_not_promoted(client):
    canceled = _create(client)
    client.post(f"{URL}{canceled['id']}/cancel")
    assert client.app.state.manager.promote_pending_to_processing() == 0
    assert client.get(f"{URL}{canceled['id']}").json()["status"] == "PENDING"


def test_cancel_after_promotion_is_409(client):
    order = _create(client)
    client.app.state.manager.promote_pending_to_processing()
    r = client.post(f"{URL}{order['id']}/cancel")
    assert r.status_code == 409
    assert r.json()["message"] == "Can only cancel orders in PENDING status"


def test_cancel_missing_order_is_404(client):
    r = client.post(f"{URL}00000000-0000-0000-0000-000000000000/cancel")
    assert r.status_code == 404
