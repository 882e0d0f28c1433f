"""HTTP client for interacting with the external routing service."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Sequence

import httpx

from ...config import settings
from .models import (
    PlanningResult,
    PlanningState,
    RouterOrder,
    RouterRoute,
    RouterStop,
    SchedulingInfo,
)

ORDER_EXISTS_CODE = "ERR_ORD_EXISTS"
ORDER_NOT_FOUND_CODE = "ERR_ORD_NOT_FOUND"
# get_completion_details accepts at most this many orders per call
COMPLETION_BATCH_LIMIT = 500

logger = logging.getLogger(__name__)


class RouterAPIError(RuntimeError):
    """The router answered but reported the operation as unsuccessful."""

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class OrderAlreadyExistsError(RouterAPIError):
    pass


class RouterClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or settings.router_base_url).rstrip("/")
        self.api_key = api_key or settings.router_api_key
        if not self.api_key:
            raise ValueError("Router API key is not configured.")
        self.timeout = timeout if timeout is not None else settings.router_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.router_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.router_backoff_seconds
        self._transport = transport
        self._sleep = sleep

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def _request(self, method: str, endpoint: str, *, params: dict | None = None, body: Any = None) -> dict:
        url = f"{self.base_url}/{endpoint}"
        query = {"key": self.api_key, **(params or {})}

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.request(method, url, params=query, json=body)
                    response.raise_for_status()
                    data = response.json()
                    return self._check_success(endpoint, data)
                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    # Client errors other than rate limiting will not improve on retry
                    if 400 <= status_code < 500 and status_code != 429:
                        raise RouterAPIError(
                            f"Router API error ({status_code}) on {endpoint}: {e.response.text}",
                            status_code=status_code,
                        ) from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise RouterAPIError(
                            f"Router API error ({status_code}) on {endpoint}: {e.response.text}",
                            status_code=status_code,
                        ) from e
                    self._sleep(self.backoff_seconds * attempt)
                except (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to reach router at {self.base_url} ({endpoint}): {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"Router network error on {endpoint}, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries}): {e}"
                    )
                    self._sleep(wait_time)
        finally:
            client.close()

    @staticmethod
    def _check_success(endpoint: str, data: Any) -> dict:
        if not isinstance(data, dict):
            raise RouterAPIError(f"Unexpected router response on {endpoint}: {data!r}")
        if data.get("success", True) is False:
            code = data.get("code")
            message = data.get("message") or code or "unknown error"
            error_cls = OrderAlreadyExistsError if code == ORDER_EXISTS_CODE else RouterAPIError
            raise error_cls(f"Router rejected {endpoint}: {message}", code=code)
        return data

    def _get(self, endpoint: str, params: dict | None = None) -> dict:
        return self._request("GET", endpoint, params=params)

    def _post(self, endpoint: str, body: Any) -> dict:
        return self._request("POST", endpoint, body=body)

    # ── Orders ──

    def create_order(
        self,
        order_no: str,
        order_type: str,
        date: str,
        address: str,
        location_name: str | None = None,
        duration: int | None = None,
        notes: str | None = None,
    ) -> dict:
        """Create an order. ``order_type`` is D (delivery), P (pickup) or T (task)."""
        return self._post(
            "create_order",
            {
                "operation": "CREATE",
                "orderNo": order_no,
                "type": order_type,
                "date": date,
                "location": {
                    "address": address,
                    "locationName": location_name or "",
                },
                "duration": duration or 15,
                "notes": notes or "",
            },
        )

    def delete_order(self, order_no: str, force: bool = False) -> dict:
        return self._post("delete_order", {"orderNo": order_no, "forceDelete": force})

    def search_orders(self, date_from: str, date_to: str) -> list[RouterOrder]:
        """Return every order in the date range, following pagination tags."""
        orders: list[RouterOrder] = []
        after_tag: str | None = None
        while True:
            body: dict[str, Any] = {"dateRange": {"from": date_from, "to": date_to}, "includeOrderData": True}
            if after_tag:
                body["after_tag"] = after_tag
            data = self._post("search_orders", body)
            for entry in data.get("orders") or []:
                payload = entry.get("data") or entry
                order_no = payload.get("orderNo")
                if not order_no:
                    continue
                location = payload.get("location") or {}
                orders.append(
                    RouterOrder(order_no=order_no, date=payload.get("date", ""), address=location.get("address"))
                )
            after_tag = data.get("after_tag")
            if not after_tag:
                return orders

    def get_completion_details(self, order_nos: Sequence[str]) -> dict[str, str]:
        """Map order number to its completion status (success, failed, ...)."""
        statuses: dict[str, str] = {}
        for start in range(0, len(order_nos), COMPLETION_BATCH_LIMIT):
            batch = order_nos[start : start + COMPLETION_BATCH_LIMIT]
            data = self._post("get_completion_details", {"orders": [{"orderNo": no} for no in batch]})
            for entry in data.get("orders") or []:
                status = (entry.get("data") or {}).get("status") or entry.get("status")
                if entry.get("orderNo") and status:
                    statuses[entry["orderNo"]] = status
        return statuses

    # ── Planning ──

    def start_planning(self, date: str, use_orders: Sequence[str], start_with: str = "CURRENT") -> PlanningResult:
        data = self._post(
            "start_planning",
            {"date": date, "useOrders": list(use_orders), "startWith": start_with},
        )
        return PlanningResult(
            planning_id=data.get("planningId"),
            orders_with_invalid_location=list(data.get("ordersWithInvalidLocation") or []),
            missing_orders=list(data.get("missingOrders") or []),
        )

    def get_planning_status(self, planning_id: int) -> PlanningState:
        data = self._get("get_planning_status", {"planningId": str(planning_id)})
        return PlanningState.from_code(data.get("status"))

    def get_scheduling_info(self, order_no: str) -> SchedulingInfo:
        data = self._get("get_scheduling_info", {"orderNo": order_no})
        info = data.get("scheduleInformation") or {}
        return SchedulingInfo(
            order_scheduled=bool(data.get("orderScheduled")),
            driver_name=info.get("driverName"),
            driver_serial=info.get("driverSerial"),
            scheduled_at_dt=info.get("scheduledAtDt"),
            stop_number=info.get("stopNumber"),
        )

    # ── Routes ──

    def get_routes(self, date: str) -> list[RouterRoute]:
        data = self._get("get_routes", {"date": date})
        routes: list[RouterRoute] = []
        for route in data.get("routes") or []:
            stops = []
            for stop in route.get("stops") or []:
                if stop.get("type") in ("break", "depot"):
                    continue
                location = stop.get("location") or {}
                stops.append(
                    RouterStop(
                        order_no=stop.get("orderNo"),
                        stop_number=stop.get("stopNumber"),
                        address=stop.get("address") or location.get("address"),
                        latitude=stop.get("latitude", location.get("latitude")),
                        longitude=stop.get("longitude", location.get("longitude")),
                    )
                )
            routes.append(
                RouterRoute(
                    date=date,
                    driver_serial=route.get("driverSerial"),
                    driver_name=route.get("driverName"),
                    stops=stops,
                )
            )
        return routes


def check_health(client: RouterClient | None = None) -> bool:
    """Check router reachability with a cheap read-only call."""
    try:
        router = client or RouterClient()
        router.get_routes(time.strftime("%Y-%m-%d"))
        return True
    except (RouterAPIError, ConnectionError, ValueError):
        return False
