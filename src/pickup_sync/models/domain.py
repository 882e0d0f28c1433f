"""Domain models for properties, the sync ledger and routing inputs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
"""Weekday names indexed like ``date.weekday()``."""

FREQUENCY_INTERVAL_DAYS = {"weekly": 7, "bi-weekly": 14, "monthly": 28}

SOURCE_MANUAL = "manual"
SOURCE_DETECTED = "detected"
SOURCE_ROUTE_OPTIMIZED = "route_optimized"
SOURCE_FEASIBILITY_CONFIRMED = "feasibility_confirmed"

ORDER_ACTIVE = "active"
ORDER_DELETED = "deleted"

ACTIVE_ROUTE_STATUSES = frozenset({"open", "assigned", "in_progress", "completed"})


@dataclass(slots=True)
class Property:
    """A serviced address together with its recurring pickup schedule."""

    id: str
    user_id: str
    address: str
    pickup_day: Optional[str] = None
    pickup_frequency: str = "weekly"
    pickup_day_source: Optional[str] = None
    pickup_anchor_date: Optional[str] = None
    zone_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    service_status: str = "pending_review"
    has_active_subscription: bool = False
    customer_name: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class HistoricalVisit:
    date: str
    status: str
    order_no: Optional[str] = None


@dataclass(slots=True)
class SyncOrder:
    """Ledger row for an order the orchestrator asked the router to create."""

    property_id: str
    order_no: str
    scheduled_date: str
    status: str = ORDER_ACTIVE
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass(slots=True)
class RouteStop:
    stop_number: Optional[int]
    latitude: Optional[float]
    longitude: Optional[float]
    address: Optional[str] = None


@dataclass(slots=True)
class RouteRecord:
    """An already-scheduled route, used read-only by the optimizer."""

    id: str
    scheduled_date: str
    status: str
    driver_name: Optional[str] = None
    stops: list[RouteStop] = field(default_factory=list)


@dataclass(slots=True)
class CollectionIntent:
    property_id: str
    pickup_date: str
    intent: str


@dataclass(slots=True)
class PendingSelection:
    """A service choice waiting for address approval before it is billed."""

    id: str
    property_id: str
    user_id: str
    service_id: str
    quantity: int = 1
    use_sticker: bool = False


@dataclass(slots=True)
class Zone:
    id: str
    name: str
    center_lat: float
    center_lng: float
    radius_miles: Optional[float] = None
    driver_name: Optional[str] = None


@dataclass(slots=True)
class User:
    id: str
    billing_customer_id: Optional[str] = None
    email: Optional[str] = None
