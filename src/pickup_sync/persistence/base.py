"""Contracts for the data-store collaborators used by the sync core."""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from ..models.domain import (
    PendingSelection,
    Property,
    RouteRecord,
    SyncOrder,
    User,
    Zone,
)


class PropertyStore(Protocol):
    def get_property_by_id(self, property_id: str) -> Optional[Property]: ...

    def get_properties_for_sync(self) -> list[Property]:
        """Approved properties with a pickup day and an active subscription."""
        ...

    def get_properties_needing_detection(self) -> list[Property]:
        """Properties whose pickup day may be refreshed from history (non-manual source)."""
        ...

    def get_approved_properties_without_pickup_day(self) -> list[Property]: ...

    def update_property(self, property_id: str, fields: dict[str, Any]) -> None: ...

    def update_pickup_schedule(
        self,
        property_id: str,
        pickup_day: Optional[str],
        source: Optional[str],
        frequency: Optional[str] = None,
    ) -> None: ...

    def approve_if_pending(self, property_id: str) -> bool:
        """Approve only if still ``pending_review``; True when this call made the change."""
        ...


class SyncLedger(Protocol):
    def get_sync_order_by_order_no(self, order_no: str) -> Optional[SyncOrder]:
        """Return the active ledger row for ``order_no``, if any."""
        ...

    def create_sync_order(self, order: SyncOrder) -> SyncOrder: ...

    def mark_sync_order_deleted(self, order_no: str) -> None: ...

    def get_future_sync_orders_for_property(self, property_id: str, after: str) -> list[SyncOrder]:
        """Active rows for the property scheduled strictly after ``after``."""
        ...

    def get_orphaned_sync_property_ids(self, after: str) -> list[str]:
        """Properties without an active subscription that still own future active rows."""
        ...

    def record_sync_run(self, run: dict[str, Any]) -> None: ...


class CollectionIntentStore(Protocol):
    def get_skip_dates(self, property_id: str, date_from: str, date_to: str) -> set[str]: ...


class SelectionStore(Protocol):
    def claim_pending_selections(self, property_id: str) -> list[PendingSelection]:
        """Atomically read and delete the property's pending selections."""
        ...

    def save_pending_selections(self, property_id: str, user_id: str, selections: Sequence[dict[str, Any]]) -> None: ...


class UserStore(Protocol):
    def get_user_by_id(self, user_id: str) -> Optional[User]: ...


class AuditLog(Protocol):
    def create_audit_log(
        self,
        user_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any],
    ) -> None: ...


class RouteSource(Protocol):
    def get_routes(self, date_from: str, date_to: str) -> list[RouteRecord]:
        """Routes scheduled in the inclusive date range, stops included."""
        ...


class ZoneStore(Protocol):
    def get_active_zones(self) -> list[Zone]: ...
