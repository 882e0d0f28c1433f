import json

import httpx
import pytest

from pickup_sync.services.routing.models import PlanningState
from pickup_sync.services.routing.router_client import (
    OrderAlreadyExistsError,
    RouterAPIError,
    RouterClient,
    check_health,
)


def _client(handler, max_retries: int = 2) -> tuple[RouterClient, list[float]]:
    sleeps: list[float] = []
    client = RouterClient(
        base_url="https://router.test/v1/",
        api_key="secret",
        max_retries=max_retries,
        backoff_seconds=0.5,
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
    )
    return client, sleeps


def test_requires_api_key(monkeypatch) -> None:
    from pickup_sync.config import settings

    monkeypatch.setattr(settings, "router_api_key", None)
    with pytest.raises(ValueError):
        RouterClient(api_key=None)


def test_create_order_sends_key_and_payload() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "id": "abc"})

    client, _ = _client(handler)
    client.create_order("SYNC-1", "P", "2026-02-26", "12 Oak Street", location_name="Jane", duration=10)

    request = seen[0]
    assert request.url.path == "/v1/create_order"
    assert request.url.params["key"] == "secret"
    body = json.loads(request.content)
    assert body["operation"] == "CREATE"
    assert body["orderNo"] == "SYNC-1"
    assert body["location"] == {"address": "12 Oak Street", "locationName": "Jane"}
    assert body["duration"] == 10


def test_existing_order_raises_specific_error() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"success": False, "code": "ERR_ORD_EXISTS"}))

    with pytest.raises(OrderAlreadyExistsError) as excinfo:
        client.create_order("SYNC-1", "P", "2026-02-26", "12 Oak Street")
    assert excinfo.value.code == "ERR_ORD_EXISTS"


def test_client_error_is_not_retried() -> None:
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, text="bad key")

    client, sleeps = _client(handler)
    with pytest.raises(RouterAPIError) as excinfo:
        client.delete_order("SYNC-1", force=True)
    assert excinfo.value.status_code == 401
    assert len(calls) == 1
    assert sleeps == []


def test_server_errors_are_retried_then_succeed() -> None:
    responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, json={"status": "R"})]

    client, sleeps = _client(lambda request: responses.pop(0))

    assert client.get_planning_status(12) is PlanningState.RUNNING
    assert sleeps == [0.5, 1.0]


def test_network_errors_exhaust_into_connection_error() -> None:
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client, sleeps = _client(handler, max_retries=2)
    with pytest.raises(ConnectionError):
        client.get_routes("2026-02-26")
    assert sleeps == [0.5, 1.0]


def test_search_orders_follows_pagination() -> None:
    pages = {
        None: {"success": True, "orders": [{"data": {"orderNo": "A", "date": "2026-02-05", "location": {"address": "1 X"}}}], "after_tag": "t1"},
        "t1": {"success": True, "orders": [{"data": {"orderNo": "B", "date": "2026-02-12", "location": {"address": "2 Y"}}}]},
    }

    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json=pages[body.get("after_tag")])

    client, _ = _client(handler)
    orders = client.search_orders("2025-12-01", "2026-02-25")

    assert [(o.order_no, o.address) for o in orders] == [("A", "1 X"), ("B", "2 Y")]


def test_planning_and_scheduling_info_parsing() -> None:
    def handler(request):
        if request.url.path.endswith("start_planning"):
            return httpx.Response(200, json={"success": True, "planningId": 77, "ordersWithInvalidLocation": ["F-1"]})
        return httpx.Response(
            200,
            json={
                "success": True,
                "orderScheduled": True,
                "scheduleInformation": {"driverName": "Sam", "scheduledAtDt": "2026-03-02 09:15:00", "stopNumber": 4},
            },
        )

    client, _ = _client(handler)
    planning = client.start_planning("2026-03-02", ["F-1"])
    info = client.get_scheduling_info("F-1")

    assert planning.planning_id == 77
    assert planning.orders_with_invalid_location == ["F-1"]
    assert info.order_scheduled
    assert info.scheduled_date == "2026-03-02"
    assert info.stop_number == 4


def test_unknown_planning_code_maps_to_error() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"status": "?"}))

    assert client.get_planning_status(1) is PlanningState.ERROR


def test_get_routes_drops_breaks_and_depots() -> None:
    payload = {
        "success": True,
        "routes": [
            {
                "driverSerial": "D1",
                "driverName": "Sam",
                "stops": [
                    {"type": "depot", "stopNumber": 0},
                    {"orderNo": "A", "stopNumber": 1, "latitude": 40.0, "longitude": -75.0, "address": "1 X"},
                    {"type": "break", "stopNumber": 2},
                    {"orderNo": "B", "stopNumber": 3, "location": {"latitude": 40.1, "longitude": -75.1, "address": "2 Y"}},
                ],
            }
        ],
    }
    client, _ = _client(lambda request: httpx.Response(200, json=payload))

    routes = client.get_routes("2026-02-23")

    assert routes[0].driver_name == "Sam"
    assert [stop.order_no for stop in routes[0].stops] == ["A", "B"]
    assert routes[0].stops[1].latitude == 40.1


def test_check_health_reports_failures() -> None:
    client, _ = _client(lambda request: httpx.Response(500), max_retries=0)

    assert check_health(client) is False
