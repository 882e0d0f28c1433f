"""Nearest-insertion pickup day optimizer."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Literal, Optional, Protocol, Sequence

from ...config import settings
from ...models.domain import (
    ACTIVE_ROUTE_STATUSES,
    SOURCE_ROUTE_OPTIMIZED,
    WEEKDAYS,
    Property,
    RouteStop,
)
from ...persistence.base import PropertyStore, RouteSource, ZoneStore
from ..geospatial import find_nearest_zone, haversine_miles

# Expected comparable routes per window day when the fleet is fully active
ROUTES_PER_DAY_BASELINE = 0.7

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    def geocode(self, address: str) -> Optional[tuple[float, float]]: ...


@dataclass(slots=True)
class OptimizationResult:
    pickup_day: str
    insertion_cost_miles: float
    confidence: float
    best_route_id: Optional[str] = None
    routes_compared: int = 0
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    driver_name: Optional[str] = None


@dataclass(slots=True)
class _RouteCost:
    route_id: str
    day_of_week: str
    miles: float
    minutes: float


@dataclass(slots=True)
class _DayGroup:
    total: float
    count: int
    best_route_id: str
    best_cost: float


def min_insertion_cost(stops: Sequence[RouteStop], lat: float, lng: float) -> float:
    """Cheapest extra mileage to insert ``(lat, lng)`` into an ordered route.

    Inserting between stops A and B costs ``d(A, X) + d(X, B) - d(A, B)``;
    inserting at either end costs the distance to that endpoint. Returns
    ``math.inf`` when no stop has coordinates.
    """
    ordered = sorted(
        (stop for stop in stops if stop.latitude is not None and stop.longitude is not None),
        key=lambda stop: stop.stop_number if stop.stop_number is not None else math.inf,
    )
    if not ordered:
        return math.inf

    first, last = ordered[0], ordered[-1]
    best = min(
        haversine_miles(lat, lng, first.latitude, first.longitude),
        haversine_miles(last.latitude, last.longitude, lat, lng),
    )
    for a, b in zip(ordered, ordered[1:]):
        cost = (
            haversine_miles(a.latitude, a.longitude, lat, lng)
            + haversine_miles(lat, lng, b.latitude, b.longitude)
            - haversine_miles(a.latitude, a.longitude, b.latitude, b.longitude)
        )
        best = min(best, cost)
    return best


class InsertionCostOptimizer:
    """Proposes the weekday that adds the least mileage to recently-run routes."""

    def __init__(
        self,
        properties: PropertyStore,
        routes: RouteSource,
        geocoder: Geocoder | None = None,
        zones: ZoneStore | None = None,
        window_days: int | None = None,
        metric: Literal["distance", "time", "both"] | None = None,
        avg_speed_mph: float | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.properties = properties
        self.routes = routes
        self.geocoder = geocoder
        self.zones = zones
        self.window_days = window_days or settings.optimization_window_days
        self.metric = metric or settings.optimization_metric
        self.avg_speed_mph = avg_speed_mph or settings.optimization_avg_speed_mph
        self._today = today

    def _resolve_coordinates(self, prop: Property, persist: bool) -> Optional[tuple[float, float]]:
        if prop.has_coordinates:
            return float(prop.latitude), float(prop.longitude)
        if self.geocoder is None:
            return None
        coordinates = self.geocoder.geocode(prop.address)
        if coordinates is None:
            logger.info(f"Property {prop.id} could not be geocoded; no day proposal")
            return None
        if persist:
            self.properties.update_property(prop.id, {"latitude": coordinates[0], "longitude": coordinates[1]})
        return coordinates

    def _cost_value(self, cost: _RouteCost) -> float:
        if self.metric == "time":
            return cost.minutes
        if self.metric == "both":
            return cost.miles + cost.minutes / 60
        return cost.miles

    def find_optimal_pickup_day(
        self,
        prop: Property,
        persist: bool = True,
        today: date | None = None,
    ) -> Optional[OptimizationResult]:
        coordinates = self._resolve_coordinates(prop, persist)
        if coordinates is None:
            return None
        lat, lng = coordinates

        today = today or self._today()
        window_start = today - timedelta(days=self.window_days)
        routes = [
            route
            for route in self.routes.get_routes(window_start.isoformat(), today.isoformat())
            if route.status in ACTIVE_ROUTE_STATUSES
        ]
        if not routes:
            return None

        costs: list[_RouteCost] = []
        for route in routes:
            miles = min_insertion_cost(route.stops, lat, lng)
            if math.isinf(miles):
                continue
            costs.append(
                _RouteCost(
                    route_id=route.id,
                    day_of_week=WEEKDAYS[date.fromisoformat(route.scheduled_date[:10]).weekday()],
                    miles=miles,
                    minutes=miles / self.avg_speed_mph * 60,
                )
            )
        if not costs:
            return None

        groups: dict[str, _DayGroup] = {}
        for cost in costs:
            value = self._cost_value(cost)
            group = groups.get(cost.day_of_week)
            if group is None:
                groups[cost.day_of_week] = _DayGroup(total=value, count=1, best_route_id=cost.route_id, best_cost=value)
                continue
            group.total += value
            group.count += 1
            if value < group.best_cost:
                group.best_cost = value
                group.best_route_id = cost.route_id

        best_day, best_group = min(groups.items(), key=lambda item: item[1].total / item[1].count)
        result = OptimizationResult(
            pickup_day=best_day,
            insertion_cost_miles=best_group.total / best_group.count,
            confidence=min(len(costs) / (self.window_days * ROUTES_PER_DAY_BASELINE), 1.0),
            best_route_id=best_group.best_route_id,
            routes_compared=len(costs),
        )

        if self.zones is not None:
            match = find_nearest_zone(lat, lng, self.zones.get_active_zones())
            if match:
                result.zone_id = match.zone.id
                result.zone_name = match.zone.name
                result.driver_name = match.zone.driver_name
        return result

    def assign_pickup_day(self, property_id: str) -> Optional[OptimizationResult]:
        """Run the optimizer for one property and persist a successful proposal."""
        prop = self.properties.get_property_by_id(property_id)
        if prop is None:
            return None
        result = self.find_optimal_pickup_day(prop)
        if result is None:
            return None
        self.properties.update_pickup_schedule(prop.id, result.pickup_day, SOURCE_ROUTE_OPTIMIZED)
        if result.zone_id and not prop.zone_id:
            self.properties.update_property(prop.id, {"zone_id": result.zone_id})
        logger.info(
            f"Assigned {result.pickup_day} to property {prop.id} "
            f"(+{result.insertion_cost_miles:.2f} mi, {result.routes_compared} routes)"
        )
        return result
