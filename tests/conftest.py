"""In-memory stand-ins for the router and the Supabase stores."""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Optional

import pytest

from pickup_sync.models.domain import (
    ORDER_ACTIVE,
    ORDER_DELETED,
    PendingSelection,
    Property,
    RouteRecord,
    SyncOrder,
    User,
    Zone,
)
from pickup_sync.services.routing.models import (
    PlanningResult,
    PlanningState,
    RouterOrder,
    SchedulingInfo,
)
from pickup_sync.services.routing.router_client import OrderAlreadyExistsError, RouterAPIError

# A Wednesday
TODAY = date(2026, 2, 25)


class FakeRouter:
    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.deleted: list[tuple[str, bool]] = []
        self.remote_orders: set[str] = set()
        self.fail_create_for: set[str] = set()
        self.fail_delete = False
        self.orders: list[RouterOrder] = []
        self.completion: dict[str, str] = {}
        self.completion_calls: list[list[str]] = []
        self.search_calls = 0
        self.planning = PlanningResult(planning_id=1)
        self.planning_statuses: list[PlanningState] = [PlanningState.FINISHED]
        self.status_calls = 0
        self.scheduling = SchedulingInfo(order_scheduled=False)
        self.routes_by_date: dict[str, list] = {}

    def create_order(self, order_no, order_type, date, address, location_name=None, duration=None, notes=None):
        if order_no in self.fail_create_for:
            raise RouterAPIError(f"Router rejected create_order: {order_no}", code="ERR_INVALID")
        if order_no in self.remote_orders:
            raise OrderAlreadyExistsError("Router rejected create_order: exists", code="ERR_ORD_EXISTS")
        self.remote_orders.add(order_no)
        self.created.append(
            {"order_no": order_no, "type": order_type, "date": date, "address": address, "notes": notes}
        )
        return {"success": True}

    def delete_order(self, order_no, force=False):
        self.deleted.append((order_no, force))
        if self.fail_delete:
            raise RouterAPIError("Router rejected delete_order", code="ERR_ORD_NOT_FOUND")
        self.remote_orders.discard(order_no)
        return {"success": True}

    def search_orders(self, date_from, date_to):
        self.search_calls += 1
        return list(self.orders)

    def get_completion_details(self, order_nos):
        self.completion_calls.append(list(order_nos))
        return {no: self.completion[no] for no in order_nos if no in self.completion}

    def start_planning(self, date, use_orders, start_with="CURRENT"):
        return self.planning

    def get_planning_status(self, planning_id):
        index = min(self.status_calls, len(self.planning_statuses) - 1)
        self.status_calls += 1
        return self.planning_statuses[index]

    def get_scheduling_info(self, order_no):
        return self.scheduling

    def get_routes(self, date):
        return list(self.routes_by_date.get(date, []))


class InMemoryPropertyStore:
    def __init__(self, properties: list[Property] | None = None) -> None:
        self.properties = {prop.id: prop for prop in properties or []}
        self.schedule_updates: list[tuple] = []
        self.fail_listing = False

    def get_property_by_id(self, property_id: str) -> Optional[Property]:
        return self.properties.get(property_id)

    def get_properties_for_sync(self) -> list[Property]:
        if self.fail_listing:
            raise ConnectionError("database unavailable")
        return [
            prop
            for prop in self.properties.values()
            if prop.service_status == "approved" and prop.pickup_day and prop.has_active_subscription
        ]

    def get_properties_needing_detection(self) -> list[Property]:
        return [
            prop
            for prop in self.properties.values()
            if prop.service_status == "approved" and prop.pickup_day_source != "manual"
        ]

    def get_approved_properties_without_pickup_day(self) -> list[Property]:
        return [prop for prop in self.properties.values() if prop.service_status == "approved" and not prop.pickup_day]

    def update_property(self, property_id: str, fields: dict[str, Any]) -> None:
        prop = self.properties[property_id]
        for key, value in fields.items():
            setattr(prop, key, value)

    def update_pickup_schedule(self, property_id, pickup_day, source, frequency=None) -> None:
        self.schedule_updates.append((property_id, pickup_day, source, frequency))
        prop = self.properties[property_id]
        prop.pickup_day = pickup_day
        prop.pickup_day_source = source
        if frequency:
            prop.pickup_frequency = frequency

    def approve_if_pending(self, property_id: str) -> bool:
        prop = self.properties[property_id]
        if prop.service_status != "pending_review":
            return False
        prop.service_status = "approved"
        return True


class InMemoryLedger:
    def __init__(self, subscribed: Optional[Callable[[str], bool]] = None) -> None:
        self.rows: list[SyncOrder] = []
        self.runs: list[dict[str, Any]] = []
        self._subscribed = subscribed

    def get_sync_order_by_order_no(self, order_no: str) -> Optional[SyncOrder]:
        for row in self.rows:
            if row.order_no == order_no and row.status == ORDER_ACTIVE:
                return row
        return None

    def create_sync_order(self, order: SyncOrder) -> SyncOrder:
        self.rows.append(order)
        return order

    def mark_sync_order_deleted(self, order_no: str) -> None:
        for row in self.rows:
            if row.order_no == order_no and row.status == ORDER_ACTIVE:
                row.status = ORDER_DELETED

    def get_future_sync_orders_for_property(self, property_id: str, after: str) -> list[SyncOrder]:
        return [
            row
            for row in self.rows
            if row.property_id == property_id and row.status == ORDER_ACTIVE and row.scheduled_date > after
        ]

    def get_orphaned_sync_property_ids(self, after: str) -> list[str]:
        owners = sorted({row.property_id for row in self.rows if row.status == ORDER_ACTIVE and row.scheduled_date > after})
        if self._subscribed is None:
            return []
        return [pid for pid in owners if not self._subscribed(pid)]

    def record_sync_run(self, run: dict[str, Any]) -> None:
        self.runs.append(run)

    def active(self) -> list[SyncOrder]:
        return [row for row in self.rows if row.status == ORDER_ACTIVE]


class InMemoryIntentStore:
    def __init__(self, skips: dict[str, set[str]] | None = None) -> None:
        self.skips = skips or {}

    def get_skip_dates(self, property_id, date_from, date_to) -> set[str]:
        return {day for day in self.skips.get(property_id, set()) if date_from <= day <= date_to}


class InMemorySelectionStore:
    def __init__(self, selections: list[PendingSelection] | None = None) -> None:
        self.selections = list(selections or [])
        self.saved: list[tuple[str, str, list[dict]]] = []

    def claim_pending_selections(self, property_id: str) -> list[PendingSelection]:
        claimed = [sel for sel in self.selections if sel.property_id == property_id]
        self.selections = [sel for sel in self.selections if sel.property_id != property_id]
        return claimed

    def save_pending_selections(self, property_id, user_id, selections) -> None:
        self.saved.append((property_id, user_id, list(selections)))


class InMemoryUserStore:
    def __init__(self, users: list[User] | None = None) -> None:
        self.users = {user.id: user for user in users or []}

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)


class RecordingAuditLog:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def create_audit_log(self, user_id, action, entity_type, entity_id, details) -> None:
        self.entries.append(
            {"user_id": user_id, "action": action, "entity_type": entity_type, "entity_id": entity_id, "details": details}
        )


class StaticRouteSource:
    def __init__(self, routes: list[RouteRecord] | None = None) -> None:
        self.routes = list(routes or [])
        self.calls: list[tuple[str, str]] = []

    def get_routes(self, date_from: str, date_to: str) -> list[RouteRecord]:
        self.calls.append((date_from, date_to))
        return [route for route in self.routes if date_from <= route.scheduled_date <= date_to]


class StaticZoneStore:
    def __init__(self, zones: list[Zone] | None = None) -> None:
        self.zones = list(zones or [])

    def get_active_zones(self) -> list[Zone]:
        return list(self.zones)


@pytest.fixture
def fake_router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture
def thursday_property() -> Property:
    return Property(
        id="a1b2c3d4-0000-4000-8000-000000000001",
        user_id="user-1",
        address="12 Oak Street, Springfield",
        pickup_day="thursday",
        pickup_frequency="weekly",
        pickup_day_source="manual",
        service_status="approved",
        has_active_subscription=True,
        customer_name="Jane Customer",
    )
