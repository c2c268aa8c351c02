"""Tests for the FastAPI boundary."""

import runpy
import threading
import time

import pytest


def submit(client, name="Ada", items=("Latte",), priority="REGULAR"):
    response = client.post(
        "/api/orders",
        json={"customer_name": name, "items": list(items), "priority": priority},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthCheck:
    def test_active_when_dispatcher_runs(self, api_client):
        response = api_client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "active"


class TestSubmitOrder:
    def test_submit(self, api_client):
        data = submit(api_client, priority="vip")
        assert data["success"] is True
        assert data["order"]["priority"] == "VIP"
        assert data["order"]["status"] == "queued"
        assert data["order"]["position_in_queue"] == 1
        assert "position in queue: 1" in data["message"]
        assert data["order_id"] == data["order"]["id"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"customer_name": "", "items": ["Latte"]},
            {"customer_name": "Ada", "items": []},
            {"customer_name": "Ada"},
            {"customer_name": "Ada", "items": ["Latte"], "priority": "GOLD"},
        ],
    )
    def test_validation_errors(self, api_client, payload):
        response = api_client.post("/api/orders", json=payload)
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error_type"] == "ValidationError"
        assert api_client.get("/api/analytics").json()["stats"]["total_orders"] == 0


class TestQueueStatus:
    def test_priority_ordering(self, api_client, clock):
        submit(api_client, "A", priority="REGULAR")
        clock.advance(minutes=1)
        submit(api_client, "B", priority="VIP")
        clock.advance(minutes=1)
        submit(api_client, "C", priority="MOBILE_ORDER")

        status = api_client.get("/api/queue/status").json()
        assert status["queue_length"] == 3
        assert status["preparing_count"] == 0
        assert [(o["customer_name"], o["position_in_queue"]) for o in status["queue_orders"]] == [
            ("B", 1), ("C", 2), ("A", 3),
        ]
        assert [o["estimated_wait_time"] for o in status["queue_orders"]] == [0, 5, 10]
        assert status["estimated_wait_time"] == 15

    def test_limit_trims_listing_only(self, api_client):
        for i in range(4):
            submit(api_client, f"c{i}")
        status = api_client.get("/api/queue/status", params={"limit": 2}).json()
        assert status["queue_length"] == 4
        assert len(status["queue_orders"]) == 2


class TestStaffFlow:
    def test_pull_complete_cycle(self, api_client, clock):
        a = submit(api_client, "A", priority="REGULAR")
        b = submit(api_client, "B", priority="VIP")

        response = api_client.post("/api/orders/next")
        assert response.status_code == 200
        assert response.json()["order"]["id"] == b["order_id"]
        assert response.json()["order"]["status"] == "preparing"

        busy = api_client.post("/api/orders/next")
        assert busy.status_code == 409
        assert busy.json()["error_type"] == "ConflictError"

        clock.advance(minutes=4)
        done = api_client.post(f"/api/orders/{b['order_id']}/complete")
        assert done.status_code == 200
        assert done.json()["order"]["status"] == "completed"

        analytics = api_client.get("/api/analytics").json()
        assert analytics["stats"]["completed_today"] == 1
        assert analytics["stats"]["total_orders"] == 2
        assert analytics["stats"]["average_wait_time"] == 4.0
        assert analytics["queue_by_priority"] == {"VIP": 0, "MOBILE_ORDER": 0, "REGULAR": 1}
        assert analytics["recent_completions"][0]["id"] == b["order_id"]

        cancelled = api_client.delete(f"/api/orders/{a['order_id']}/cancel")
        assert cancelled.status_code == 200
        assert api_client.get("/api/queue/status").json()["queue_length"] == 0

    def test_pull_from_empty_queue(self, api_client):
        response = api_client.post("/api/orders/next")
        assert response.status_code == 204
        assert response.content == b""

    def test_start_specific_order(self, api_client):
        submit(api_client, "A", priority="VIP")
        b = submit(api_client, "B")
        response = api_client.post(f"/api/orders/{b['order_id']}/start")
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "preparing"

    def test_complete_queued_order(self, api_client):
        a = submit(api_client)
        response = api_client.post(f"/api/orders/{a['order_id']}/complete")
        assert response.status_code == 409
        assert response.json()["error_type"] == "InvalidStateError"

    def test_cancel_twice(self, api_client):
        a = submit(api_client)
        assert api_client.delete(f"/api/orders/{a['order_id']}/cancel").status_code == 200
        again = api_client.delete(f"/api/orders/{a['order_id']}/cancel")
        assert again.status_code == 409
        assert again.json()["error_type"] == "InvalidStateError"

    def test_action_reports_the_state_it_produced(self, api_client, monkeypatch):
        service = api_client.app.state.queue_service
        a = submit(api_client)
        begin_preparing = service.begin_preparing
        racers = []

        def begin_then_race(order_id):
            order = begin_preparing(order_id)
            racer = threading.Thread(target=service.complete, args=(order_id,), daemon=True)
            racers.append(racer)
            racer.start()
            racer.join(0.2)
            return order

        monkeypatch.setattr(service, "begin_preparing", begin_then_race)
        response = api_client.post(f"/api/orders/{a['order_id']}/start")
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "preparing"

        racers[0].join(5)
        assert api_client.get(f"/api/orders/{a['order_id']}").json()["order"]["status"] == "completed"

    @pytest.mark.parametrize(
        "method, path",
        [
            ("post", "/api/orders/missing/complete"),
            ("delete", "/api/orders/missing/cancel"),
            ("post", "/api/orders/missing/start"),
            ("get", "/api/orders/missing"),
        ],
    )
    def test_unknown_order(self, api_client, method, path):
        response = getattr(api_client, method)(path)
        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFoundError"


class TestCustomerOrders:
    def test_lists_all_statuses_newest_first(self, api_client, clock):
        first = submit(api_client, "Ada")
        clock.advance(minutes=1)
        submit(api_client, "Grace")
        clock.advance(minutes=1)
        second = submit(api_client, "ada", items=["Mocha", "Mocha"])
        api_client.delete(f"/api/orders/{first['order_id']}/cancel")

        orders = api_client.get("/api/customer/ADA/orders").json()["orders"]
        assert [o["id"] for o in orders] == [second["order_id"], first["order_id"]]
        assert orders[0]["status"] == "queued"
        assert orders[0]["position_in_queue"] == 2
        assert orders[1]["status"] == "cancelled"
        assert orders[1]["position_in_queue"] is None

    def test_unknown_customer(self, api_client):
        response = api_client.get("/api/customer/nobody/orders")
        assert response.status_code == 200
        assert response.json()["orders"] == []


class TestWebSocket:
    def test_initial_snapshot_then_updates(self, api_client):
        with api_client.websocket_connect("/ws/queue") as ws:
            initial = ws.receive_json()
            assert initial["event"] == "queue_updated"
            assert initial["data"]["queue_length"] == 0

            submit(api_client, "Ada")
            update = ws.receive_json()
            assert update["event"] == "queue_updated"
            assert update["data"]["queue_length"] == 1
            assert update["data"]["queue_orders"][0]["customer_name"] == "Ada"

    def test_disconnect_unsubscribes(self, api_client):
        notifier = api_client.app.state.notifier
        with api_client.websocket_connect("/ws/queue") as ws:
            ws.receive_json()
            assert notifier.subscriber_count == 1
        submit(api_client, "Ada")
        for _ in range(50):
            if notifier.subscriber_count == 0:
                break
            time.sleep(0.05)
        assert notifier.subscriber_count == 0


def test_module_entry_point_serves_app(monkeypatch):
    import uvicorn

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    runpy.run_module("coffee_queue", run_name="__main__")

    assert len(calls) == 1
    target, options = calls[0]
    assert target == "coffee_queue.main:app"
    assert options["workers"] == 1
