import pytest
from fastapi import status
from fastapi.websockets import WebSocketDisconnect

SPECIAL_REQUEST = {
    "customer": {"name": "Lina", "phone": "0550000001", "address": "12 Palm Street"},
    "notes": "Pick up medicine from the pharmacy",
}

ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Name": "Dispatch Admin"}


def register_driver(client, name="Karim"):
    response = client.post("/users", json={"name": name, "role": "driver"}, headers=ADMIN)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def place_request(client):
    response = client.post("/orders", json=SPECIAL_REQUEST, headers=ADMIN)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


# ====================================================================
# CLASS 1: Service endpoints
# ====================================================================
class TestServiceEndpoints:

    def test_health_reports_database(self, client):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["database"] == "healthy"

    def test_root_names_the_service(self, client):
        assert client.get("/").json()["service"] == "dispatch-service"


# ====================================================================
# CLASS 2: Orders
# ====================================================================
class TestOrderEndpoints:
    """Single-order commands and their HTTP error mapping."""

    def test_place_and_fetch_order(self, client):
        order = place_request(client)
        assert order["order_number"] == "S-1"
        assert order["status"] == "pending"

        fetched = client.get(f"/orders/{order['id']}")
        assert fetched.status_code == status.HTTP_200_OK
        assert client.get("/orders").json()["total"] == 1

    def test_order_needs_merchant_items_or_notes(self, client):
        body = {"customer": SPECIAL_REQUEST["customer"]}
        response = client.post("/orders", json=body)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_missing_order_is_404(self, client):
        assert client.get("/orders/nope").status_code == status.HTTP_404_NOT_FOUND

    def test_assign_driver(self, client):
        driver_id = register_driver(client)
        order = place_request(client)

        response = client.post(
            f"/orders/{order['id']}/assign",
            json={"driver_id": driver_id, "delivery_fee": 25},
            headers=ADMIN
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "in_transit"
        assert body["driver_id"] == driver_id
        assert body["delivery_fee"] == 25

    def test_negative_fee_is_422(self, client):
        driver_id = register_driver(client)
        order = place_request(client)
        response = client.post(
            f"/orders/{order['id']}/assign", json={"driver_id": driver_id, "delivery_fee": -3}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_invalid_transition_is_409(self, client):
        order = place_request(client)
        client.patch(f"/orders/{order['id']}/status", json={"status": "cancelled"})

        response = client.patch(f"/orders/{order['id']}/status", json={"status": "in_transit"})
        assert response.status_code == status.HTTP_409_CONFLICT
        assert "already closed" in response.json()["detail"]

    def test_delete_order(self, client):
        order = place_request(client)
        assert client.delete(f"/orders/{order['id']}").status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"/orders/{order['id']}").status_code == status.HTTP_404_NOT_FOUND


# ====================================================================
# CLASS 3: Bulk verbs
# ====================================================================
class TestBulkEndpoints:
    """Preview and execution are separate calls."""

    def test_preview_then_assign(self, client, channel):
        driver_id = register_driver(client)
        for _ in range(3):
            place_request(client)
        channel.sent.clear()

        preview = client.get("/bulk/assign/preview").json()
        assert preview["count"] == 3

        response = client.post("/bulk/assign", json={"driver_id": driver_id, "delivery_fee": 20}, headers=ADMIN)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["affected"] == 3
        assert len(channel.sent) == 1

    def test_unsupported_status_target_is_422(self, client):
        response = client.post("/bulk/status", json={"status": "preparing"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_status_preview(self, client):
        place_request(client)
        response = client.get("/bulk/status/preview", params={"status": "pending"})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["count"] == 0

    def test_delete_all_resets_numbering(self, client):
        place_request(client)
        place_request(client)
        assert client.get("/bulk/delete/preview").json()["count"] == 2

        response = client.post("/bulk/delete", json={"scope": "all"}, headers=ADMIN)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["counters_reset"] is True
        assert place_request(client)["order_number"] == "S-1"


# ====================================================================
# CLASS 4: Audit log
# ====================================================================
class TestAuditEndpoints:
    """Entries carry the caller's identity and expose the undoable flag."""

    def test_undo_assignment(self, client):
        driver_id = register_driver(client)
        order = place_request(client)
        client.post(f"/orders/{order['id']}/assign", json={"driver_id": driver_id, "delivery_fee": 25}, headers=ADMIN)

        logs = client.get("/audit-logs").json()["logs"]
        entry = next(log for log in logs if log["undoable"])
        assert entry["actor_name"] == "Dispatch Admin"

        response = client.post(f"/audit-logs/{entry['id']}/undo", headers=ADMIN)
        assert response.status_code == status.HTTP_200_OK

        restored = client.get(f"/orders/{order['id']}").json()
        assert restored["status"] == "pending"
        assert restored["driver_id"] is None

        again = client.post(f"/audit-logs/{entry['id']}/undo", headers=ADMIN)
        assert again.status_code == status.HTTP_409_CONFLICT

    def test_anonymous_actor_without_headers(self, client):
        place_request_without_headers = client.post("/orders", json=SPECIAL_REQUEST)
        assert place_request_without_headers.status_code == status.HTTP_201_CREATED

        entry = client.get("/audit-logs").json()["logs"][0]
        assert entry["actor_id"] == "anonymous"

    def test_clear_logs(self, client):
        place_request(client)
        response = client.delete("/audit-logs", headers=ADMIN)

        assert response.json() == {"removed": 1}
        assert client.get("/audit-logs").json()["total"] == 1


# ====================================================================
# CLASS 5: Users
# ====================================================================
class TestUserEndpoints:

    def test_register_and_edit_user(self, client):
        driver_id = register_driver(client)
        response = client.patch(f"/users/{driver_id}", json={"phone": "0551234567"}, headers=ADMIN)

        assert response.status_code == status.HTTP_200_OK
        assert client.get(f"/users/{driver_id}").json()["phone"] == "0551234567"

    def test_missing_user_is_404(self, client):
        assert client.get("/users/nobody").status_code == status.HTTP_404_NOT_FOUND


# ====================================================================
# CLASS 6: Live subscriptions
# ====================================================================
class TestSubscriptions:
    """A connected client sees the initial snapshot and then every change."""

    def test_snapshot_then_push(self, client):
        with client.websocket_connect("/ws/orders") as websocket:
            assert websocket.receive_json() == []

            order = place_request(client)

            pushed = websocket.receive_json()
            assert [doc["id"] for doc in pushed] == [order["id"]]

    def test_unknown_collection_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/shipments"):
                pass
