"""Route source that reads recent routes straight from the router."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from ...models.domain import RouteRecord, RouteStop
from .router_client import RouterClient

logger = logging.getLogger(__name__)


class RouterRouteSource:
    """Fetches one day at a time; past router routes are treated as completed."""

    def __init__(self, router: RouterClient) -> None:
        self.router = router

    def get_routes(self, date_from: str, date_to: str) -> list[RouteRecord]:
        current = date.fromisoformat(date_from)
        end = date.fromisoformat(date_to)
        records: list[RouteRecord] = []
        while current <= end:
            day = current.isoformat()
            try:
                routes = self.router.get_routes(day)
            except Exception as exc:
                logger.warning(f"Could not load router routes for {day}: {exc}")
                routes = []
            for index, route in enumerate(routes):
                records.append(
                    RouteRecord(
                        id=f"{day}:{route.driver_serial or index}",
                        scheduled_date=day,
                        status="completed",
                        driver_name=route.driver_name,
                        stops=[
                            RouteStop(
                                stop_number=stop.stop_number,
                                latitude=stop.latitude,
                                longitude=stop.longitude,
                                address=stop.address,
                            )
                            for stop in route.stops
                        ],
                    )
                )
            current += timedelta(days=1)
        return records
