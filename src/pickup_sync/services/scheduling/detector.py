"""Pickup day detection from router completion history.

Counts completed pickups per weekday and commits to the most common one once
there is a minimum sample (3 by default) and the winning weekday accounts for
at least half of the completed pickups. The batch service pulls the whole
history window with one ``search_orders`` call and fetches completion details
in batches so the router is hit a bounded number of times per run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from ...config import settings
from ...models.domain import SOURCE_DETECTED, SOURCE_MANUAL, WEEKDAYS, HistoricalVisit, Property
from ...persistence.base import PropertyStore
from ..routing.models import RouterOrder
from ..routing.router_client import RouterClient

COMPLETED_STATUSES = frozenset({"success", "completed"})
MISSED_STATUSES = frozenset({"failed", "rejected"})

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectionResult:
    day: str
    confidence: float


@dataclass(slots=True)
class DetectionSummary:
    updated: int = 0
    no_data: int = 0
    skipped: int = 0
    changes: dict[str, DetectionResult] = field(default_factory=dict)


def _visit_fields(entry: HistoricalVisit | Mapping) -> tuple[str, str]:
    if isinstance(entry, Mapping):
        return entry["date"], entry["status"]
    return entry.date, entry.status


def detect_pickup_day_from_history(
    history: Iterable[HistoricalVisit | Mapping],
    min_pickups: int | None = None,
    min_confidence: float | None = None,
) -> Optional[DetectionResult]:
    """Return the most likely pickup weekday, or None when the evidence is too thin.

    Only ``completed`` visits are counted, both for the tally and for the
    confidence denominator. Ties resolve to the weekday encountered first.
    """
    min_pickups = min_pickups if min_pickups is not None else settings.detection_min_pickups
    min_confidence = min_confidence if min_confidence is not None else settings.detection_min_confidence

    day_counts: dict[str, int] = {}
    completed = 0
    for entry in history:
        visit_date, status = _visit_fields(entry)
        if status != "completed":
            continue
        completed += 1
        day_name = WEEKDAYS[date.fromisoformat(visit_date[:10]).weekday()]
        day_counts[day_name] = day_counts.get(day_name, 0) + 1

    if completed < min_pickups:
        return None

    best_day = ""
    best_count = 0
    for day_name, count in day_counts.items():
        if count > best_count:
            best_day = day_name
            best_count = count

    confidence = best_count / completed
    if confidence < min_confidence:
        return None
    return DetectionResult(day=best_day, confidence=confidence)


def _addresses_match(property_address: str, order_address: str | None) -> bool:
    if not order_address:
        return False
    left = property_address.lower().strip()
    right = order_address.lower().strip()
    return left in right or right in left


def _visit_status(order: RouterOrder, completion: Mapping[str, str], today: date) -> str:
    status = completion.get(order.order_no)
    if status in COMPLETED_STATUSES:
        return "completed"
    if status in MISSED_STATUSES:
        return "missed"
    if status is None and order.date and date.fromisoformat(order.date[:10]) < today:
        # Past orders the router has no completion record for are assumed serviced
        return "completed"
    return "scheduled"


class PickupDayDetectionService:
    """Refreshes stored pickup days from the router's recent completion history."""

    def __init__(
        self,
        router: RouterClient,
        properties: PropertyStore,
        history_weeks: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.router = router
        self.properties = properties
        self.history_weeks = history_weeks or settings.detection_history_weeks
        self.batch_size = batch_size or settings.detection_batch_size

    def collect_history(
        self,
        properties: Sequence[Property],
        today: date | None = None,
    ) -> dict[str, list[HistoricalVisit]]:
        """Return each property's visit history keyed by property id."""
        today = today or date.today()
        date_from = (today - timedelta(weeks=self.history_weeks)).isoformat()
        orders = self.router.search_orders(date_from, today.isoformat())

        order_nos = [order.order_no for order in orders]
        completion: dict[str, str] = {}
        for start in range(0, len(order_nos), self.batch_size):
            batch = order_nos[start : start + self.batch_size]
            try:
                completion.update(self.router.get_completion_details(batch))
            except Exception as exc:
                logger.warning(f"Failed to fetch completion details for {len(batch)} orders: {exc}")

        history: dict[str, list[HistoricalVisit]] = {}
        for prop in properties:
            history[prop.id] = [
                HistoricalVisit(date=order.date, status=_visit_status(order, completion, today), order_no=order.order_no)
                for order in orders
                if _addresses_match(prop.address, order.address)
            ]
        return history

    def detect_and_store(
        self,
        properties: Sequence[Property] | None = None,
        persist: bool = True,
        today: date | None = None,
    ) -> DetectionSummary:
        candidates = list(properties if properties is not None else self.properties.get_properties_needing_detection())
        summary = DetectionSummary()
        eligible = [prop for prop in candidates if prop.pickup_day_source != SOURCE_MANUAL]
        summary.skipped = len(candidates) - len(eligible)
        if not eligible:
            return summary

        history = self.collect_history(eligible, today=today)
        for prop in eligible:
            result = detect_pickup_day_from_history(history.get(prop.id, []))
            if result is None:
                summary.no_data += 1
                continue
            if result.day == prop.pickup_day:
                summary.skipped += 1
                continue
            summary.changes[prop.id] = result
            if persist:
                self.properties.update_pickup_schedule(prop.id, result.day, SOURCE_DETECTED)
            summary.updated += 1

        logger.info(
            f"Pickup day detection: updated={summary.updated}, no_data={summary.no_data}, skipped={summary.skipped}"
        )
        return summary
