"""Component tests for the order API with live event delivery over /ws."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from restaurant_order_service.broadcasters.websocket_broadcaster import WebSocketBroadcaster
from restaurant_order_service.handlers.api_handler import create_app
from restaurant_order_service.services.order_service import OrderService
from tests.doubles import InMemoryStore


@pytest.mark.component
class TestOrderEvents:
    """Test suite exercising API, service, store and socket broadcaster together."""

    @pytest.fixture
    def client(self, store: InMemoryStore) -> Iterator[TestClient]:
        """Create a test client backed by the in-memory store and a real socket broadcaster."""
        broadcaster = WebSocketBroadcaster()
        service = OrderService(store=store, broadcaster=broadcaster)
        app = create_app(order_service=service, websocket_broadcaster=broadcaster)
        with TestClient(app) as test_client:
            yield test_client

    def test_kitchen_display_follows_order_lifecycle(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as kitchen:
            kitchen.send_json({"event": "join:kitchen"})
            assert kitchen.receive_json()["event"] == "subscribed"

            created = client.post("/api/orders", json={"tableNumber": 5, "serverName": "Alice"})
            order_id = created.json()["data"]["id"]
            event = kitchen.receive_json()
            assert event["event"] == "order:created"
            assert event["data"]["order"]["id"] == order_id
            assert event["data"]["order"]["status"] == "PENDING"

            added = client.post(
                f"/api/orders/{order_id}/items",
                json={"menuItemId": "menu_burger", "quantity": 2},
            )
            assert added.status_code == 201
            event = kitchen.receive_json()
            assert event["event"] == "order-item:added"
            assert event["data"]["item"]["menuItem"]["name"] == "Cheeseburger"

            client.patch(f"/api/orders/{order_id}/status", json={"status": "IN_PROGRESS"})
            event = kitchen.receive_json()
            assert event["event"] == "order:status-changed"
            assert event["data"]["previousStatus"] == "PENDING"
            assert event["data"]["newStatus"] == "IN_PROGRESS"

            client.delete(f"/api/orders/{order_id}")
            event = kitchen.receive_json()
            assert event == {"event": "order:deleted", "data": {"orderId": order_id}}

        assert client.get(f"/api/orders/{order_id}").status_code == 404

    def test_failed_mutation_sends_no_event(self, client: TestClient) -> None:
        """Test that a rejected transition is not broadcast."""
        created = client.post("/api/orders", json={"tableNumber": 5, "serverName": "Alice"})
        order_id = created.json()["data"]["id"]

        with client.websocket_connect("/ws") as board:
            board.send_json({"event": "join:orders"})
            assert board.receive_json()["event"] == "subscribed"

            rejected = client.patch(f"/api/orders/{order_id}/status", json={"status": "COMPLETED"})
            assert rejected.status_code == 400
            assert rejected.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

            client.patch(f"/api/orders/{order_id}/status", json={"status": "CANCELED"})
            event = board.receive_json()
            assert event["event"] == "order:status-changed"
            assert event["data"]["newStatus"] == "CANCELED"

    def test_bulk_update_is_all_or_nothing(self, client: TestClient) -> None:
        pending = client.post("/api/orders", json={"tableNumber": 1, "serverName": "Alice"})
        completed = client.post("/api/orders", json={"tableNumber": 2, "serverName": "Alice"})
        pending_id = pending.json()["data"]["id"]
        completed_id = completed.json()["data"]["id"]
        client.patch(f"/api/orders/{completed_id}/status", json={"status": "IN_PROGRESS"})
        client.patch(f"/api/orders/{completed_id}/status", json={"status": "COMPLETED"})

        response = client.patch(
            "/api/orders/status",
            json={"orderIds": [pending_id, completed_id], "status": "CANCELED"},
        )

        assert response.status_code == 400
        assert client.get(f"/api/orders/{pending_id}").json()["data"]["status"] == "PENDING"
