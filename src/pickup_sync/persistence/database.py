"""Supabase-backed stores for properties, the sync ledger, routes and zones."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import Client

from ..db.supabase import require_supabase_client
from ..models.domain import (
    ORDER_ACTIVE,
    ORDER_DELETED,
    Property,
    RouteRecord,
    RouteStop,
    SyncOrder,
    Zone,
)

logger = logging.getLogger(__name__)

PROPERTY_COLUMNS = (
    "id, user_id, address, customer_name, pickup_day, pickup_frequency, pickup_day_source, "
    "pickup_anchor_date, zone_id, latitude, longitude, service_status, has_active_subscription"
)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def property_from_row(row: dict[str, Any]) -> Property:
    return Property(
        id=str(row["id"]),
        user_id=str(row.get("user_id") or ""),
        address=row.get("address") or "",
        pickup_day=row.get("pickup_day"),
        pickup_frequency=row.get("pickup_frequency") or "weekly",
        pickup_day_source=row.get("pickup_day_source"),
        pickup_anchor_date=row.get("pickup_anchor_date"),
        zone_id=row.get("zone_id"),
        latitude=_to_float(row.get("latitude")),
        longitude=_to_float(row.get("longitude")),
        service_status=row.get("service_status") or "pending_review",
        has_active_subscription=bool(row.get("has_active_subscription")),
        customer_name=row.get("customer_name"),
    )


def sync_order_from_row(row: dict[str, Any]) -> SyncOrder:
    return SyncOrder(
        id=row.get("id"),
        property_id=str(row["property_id"]),
        order_no=row["order_no"],
        scheduled_date=str(row["scheduled_date"])[:10],
        status=row.get("status") or ORDER_ACTIVE,
        created_at=row.get("created_at"),
        deleted_at=row.get("deleted_at"),
    )


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabasePropertyStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def _select(self):
        return self.client.table("properties").select(PROPERTY_COLUMNS)

    def get_property_by_id(self, property_id: str) -> Optional[Property]:
        response = self._select().eq("id", property_id).limit(1).execute()
        rows = response.data or []
        return property_from_row(rows[0]) if rows else None

    def get_properties_for_sync(self) -> list[Property]:
        response = (
            self._select()
            .eq("service_status", "approved")
            .eq("has_active_subscription", True)
            .not_.is_("pickup_day", "null")
            .execute()
        )
        return [property_from_row(row) for row in response.data or []]

    def get_properties_needing_detection(self) -> list[Property]:
        response = (
            self._select()
            .eq("service_status", "approved")
            .eq("has_active_subscription", True)
            .execute()
        )
        return [
            prop
            for prop in (property_from_row(row) for row in response.data or [])
            if prop.pickup_day_source != "manual"
        ]

    def get_approved_properties_without_pickup_day(self) -> list[Property]:
        response = self._select().eq("service_status", "approved").is_("pickup_day", "null").execute()
        return [property_from_row(row) for row in response.data or []]

    def update_property(self, property_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        self.client.table("properties").update(fields).eq("id", property_id).execute()

    def update_pickup_schedule(
        self,
        property_id: str,
        pickup_day: Optional[str],
        source: Optional[str],
        frequency: Optional[str] = None,
    ) -> None:
        fields: dict[str, Any] = {
            "pickup_day": pickup_day,
            "pickup_day_source": source,
            "pickup_day_updated_at": _utc_now(),
        }
        if frequency:
            fields["pickup_frequency"] = frequency
        self.update_property(property_id, fields)

    def approve_if_pending(self, property_id: str) -> bool:
        # Conditional update: only the first approver sees a returned row
        response = (
            self.client.table("properties")
            .update({"service_status": "approved", "service_status_updated_at": _utc_now()})
            .eq("id", property_id)
            .eq("service_status", "pending_review")
            .execute()
        )
        return bool(response.data)


class SupabaseSyncLedger:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def get_sync_order_by_order_no(self, order_no: str) -> Optional[SyncOrder]:
        response = (
            self.client.table("sync_orders")
            .select("*")
            .eq("order_no", order_no)
            .eq("status", ORDER_ACTIVE)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return sync_order_from_row(rows[0]) if rows else None

    def create_sync_order(self, order: SyncOrder) -> SyncOrder:
        response = (
            self.client.table("sync_orders")
            .insert(
                {
                    "property_id": order.property_id,
                    "order_no": order.order_no,
                    "scheduled_date": order.scheduled_date,
                    "status": order.status,
                }
            )
            .execute()
        )
        rows = response.data or []
        return sync_order_from_row(rows[0]) if rows else order

    def mark_sync_order_deleted(self, order_no: str) -> None:
        (
            self.client.table("sync_orders")
            .update({"status": ORDER_DELETED, "deleted_at": _utc_now()})
            .eq("order_no", order_no)
            .eq("status", ORDER_ACTIVE)
            .execute()
        )

    def get_future_sync_orders_for_property(self, property_id: str, after: str) -> list[SyncOrder]:
        response = (
            self.client.table("sync_orders")
            .select("*")
            .eq("property_id", property_id)
            .eq("status", ORDER_ACTIVE)
            .gt("scheduled_date", after)
            .order("scheduled_date")
            .execute()
        )
        return [sync_order_from_row(row) for row in response.data or []]

    def get_orphaned_sync_property_ids(self, after: str) -> list[str]:
        response = (
            self.client.table("sync_orders")
            .select("property_id")
            .eq("status", ORDER_ACTIVE)
            .gt("scheduled_date", after)
            .execute()
        )
        property_ids = sorted({str(row["property_id"]) for row in response.data or []})
        if not property_ids:
            return []

        subscribed = (
            self.client.table("properties")
            .select("id")
            .in_("id", property_ids)
            .eq("has_active_subscription", True)
            .execute()
        )
        still_active = {str(row["id"]) for row in subscribed.data or []}
        return [pid for pid in property_ids if pid not in still_active]

    def record_sync_run(self, run: dict[str, Any]) -> None:
        self.client.table("sync_runs").insert(run).execute()


class SupabaseCollectionIntentStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def get_skip_dates(self, property_id: str, date_from: str, date_to: str) -> set[str]:
        response = (
            self.client.table("collection_intents")
            .select("pickup_date")
            .eq("property_id", property_id)
            .eq("intent", "skip")
            .gte("pickup_date", date_from)
            .lte("pickup_date", date_to)
            .execute()
        )
        return {str(row["pickup_date"])[:10] for row in response.data or []}


class SupabaseRouteSource:
    """Routes recorded locally by dispatch, with their ordered stops."""

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def get_routes(self, date_from: str, date_to: str) -> list[RouteRecord]:
        response = (
            self.client.table("routes")
            .select("id, scheduled_date, status, driver_name, route_stops(stop_number, latitude, longitude, address)")
            .gte("scheduled_date", date_from)
            .lte("scheduled_date", date_to)
            .execute()
        )
        routes: list[RouteRecord] = []
        for row in response.data or []:
            stops = [
                RouteStop(
                    stop_number=stop.get("stop_number"),
                    latitude=_to_float(stop.get("latitude")),
                    longitude=_to_float(stop.get("longitude")),
                    address=stop.get("address"),
                )
                for stop in row.get("route_stops") or []
            ]
            routes.append(
                RouteRecord(
                    id=str(row["id"]),
                    scheduled_date=str(row["scheduled_date"])[:10],
                    status=row.get("status") or "open",
                    driver_name=row.get("driver_name"),
                    stops=stops,
                )
            )
        return routes


class SupabaseZoneStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or require_supabase_client()

    def get_active_zones(self) -> list[Zone]:
        response = self.client.table("service_zones").select("*").eq("active", True).execute()
        zones: list[Zone] = []
        for row in response.data or []:
            if row.get("center_lat") is None or row.get("center_lng") is None:
                continue
            zones.append(
                Zone(
                    id=str(row["id"]),
                    name=row.get("name") or str(row["id"]),
                    center_lat=float(row["center_lat"]),
                    center_lng=float(row["center_lng"]),
                    radius_miles=_to_float(row.get("radius_miles")),
                    driver_name=row.get("driver_name"),
                )
            )
        return zones


def check_database_connection(client: Client | None = None) -> dict[str, Any]:
    """Row counts for the tables the sync touches; used by the health endpoint."""
    try:
        supabase = client or require_supabase_client()
    except RuntimeError as exc:
        return {"configured": False, "connected": False, "error": str(exc)}
    try:
        counts = {}
        for table in ("properties", "sync_orders", "sync_runs"):
            response = supabase.table(table).select("id", count="exact").limit(1).execute()
            counts[table] = response.count or 0
        return {"configured": True, "connected": True, "counts": counts}
    except Exception as exc:
        logger.warning(f"Database health check failed: {exc}")
        return {"configured": True, "connected": False, "error": str(exc)}
