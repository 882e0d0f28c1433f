"""Daily reconciliation between desired pickups and the router's order ledger.

A run has five phases executed in order:

1. detect   - refresh non-manual pickup days from completion history
2. backfill - propose a day for approved properties that still lack one
3. sync     - create missing orders for the upcoming window
4. cleanup  - delete future orders of properties without an active subscription
5. log      - persist a run record, whether or not the run succeeded

Each phase is isolated so a failure in one does not abort the others. There
is no lock against a second concurrent run; idempotence comes from the
deterministic order numbers and from treating a remote "already exists"
answer as a skip.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional

from ...config import settings
from ...models.domain import (
    FREQUENCY_INTERVAL_DAYS,
    ORDER_ACTIVE,
    SOURCE_MANUAL,
    Property,
    SyncOrder,
)
from ...persistence.base import CollectionIntentStore, PropertyStore, SyncLedger
from ..routing.router_client import OrderAlreadyExistsError, RouterClient
from ..scheduling.cadence import build_sync_order_no, generate_pickup_dates, parse_weekday
from ..scheduling.detector import PickupDayDetectionService
from ..scheduling.optimizer import InsertionCostOptimizer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncRunResult:
    status: str = "running"
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    properties_processed: int = 0
    orders_created: int = 0
    orders_skipped: int = 0
    orders_errored: int = 0
    orders_deleted: int = 0
    detection_updates: int = 0
    days_assigned: int = 0
    error_message: Optional[str] = None

    def to_record(self) -> dict:
        record = asdict(self)
        for key in ("started_at", "finished_at"):
            if record[key] is not None:
                record[key] = record[key].isoformat()
        return record


@dataclass(slots=True)
class ScheduleChange:
    pickup_day: Optional[str]
    frequency: str
    cancelled_orders: int = 0


@dataclass(slots=True)
class PropertyPreview:
    property_id: str
    pickup_day: str
    frequency: str
    would_create: list[str] = field(default_factory=list)
    already_synced: list[str] = field(default_factory=list)
    skipped_by_customer: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SyncPreview:
    detection_changes: dict[str, str] = field(default_factory=dict)
    day_proposals: dict[str, str] = field(default_factory=dict)
    properties: list[PropertyPreview] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def orders_to_create(self) -> int:
        return sum(len(item.would_create) for item in self.properties)


class SyncOrchestrator:
    def __init__(
        self,
        properties: PropertyStore,
        ledger: SyncLedger,
        intents: CollectionIntentStore,
        router: RouterClient,
        detector: PickupDayDetectionService | None = None,
        optimizer: InsertionCostOptimizer | None = None,
        window_days: int | None = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.properties = properties
        self.ledger = ledger
        self.intents = intents
        self.router = router
        self.detector = detector
        self.optimizer = optimizer
        self.window_days = window_days or settings.sync_window_days
        self._today = today
        self._now = now

    # ── Run ──

    def run(self) -> SyncRunResult:
        result = SyncRunResult(started_at=self._now())
        today = self._today()
        try:
            self._detect_phase(result, today)
            self._backfill_phase(result, today)
            self._sync_phase(result, today)
            self._cleanup_phase(result, today)
            result.status = "completed"
        except Exception as exc:
            logger.exception("Sync run failed")
            result.status = "failed"
            result.error_message = str(exc)
        finally:
            result.finished_at = self._now()
            self._log_phase(result)
        return result

    def _detect_phase(self, result: SyncRunResult, today: date) -> None:
        if self.detector is None:
            return
        try:
            summary = self.detector.detect_and_store(today=today)
            result.detection_updates = summary.updated
        except Exception as exc:
            logger.error(f"Detection phase failed: {exc}")
            return
        # A changed day invalidates every future order booked on the previous one
        for property_id in summary.changes:
            self._cancel_after_day_change(property_id, result, today)

    def _backfill_phase(self, result: SyncRunResult, today: date) -> None:
        if self.optimizer is None:
            return
        try:
            candidates = self.properties.get_approved_properties_without_pickup_day()
        except Exception as exc:
            logger.error(f"Backfill phase could not list properties: {exc}")
            return
        for prop in candidates:
            previous_day = prop.pickup_day
            try:
                assignment = self.optimizer.assign_pickup_day(prop.id)
            except Exception as exc:
                logger.warning(f"Day assignment failed for property {prop.id}: {exc}")
                continue
            if assignment is None:
                continue
            result.days_assigned += 1
            if previous_day and assignment.pickup_day != previous_day:
                self._cancel_after_day_change(prop.id, result, today)

    def _cancel_after_day_change(self, property_id: str, result: SyncRunResult, today: date) -> None:
        try:
            deleted, errored = self._cancel_future_orders(property_id, today)
        except Exception as exc:
            logger.error(f"Could not cancel stale orders of property {property_id}: {exc}")
            result.orders_errored += 1
            return
        result.orders_deleted += deleted
        result.orders_errored += errored
        if deleted:
            logger.info(f"Pickup day of property {property_id} changed; cancelled {deleted} future orders")

    def _sync_phase(self, result: SyncRunResult, today: date) -> None:
        # A failure listing properties is unrecoverable and fails the run
        properties = self.properties.get_properties_for_sync()
        for prop in properties:
            if not prop.pickup_day or not prop.has_active_subscription:
                continue
            result.properties_processed += 1
            try:
                self._sync_property(prop, result, today)
            except Exception as exc:
                logger.error(f"Sync failed for property {prop.id}: {exc}")
                result.orders_errored += 1

    def _desired_dates(self, prop: Property, today: date) -> list[str]:
        return generate_pickup_dates(
            prop.pickup_day,
            prop.pickup_frequency,
            self.window_days,
            anchor_date=prop.pickup_anchor_date,
            today=today,
        )

    def _sync_property(self, prop: Property, result: SyncRunResult, today: date) -> None:
        dates = self._desired_dates(prop, today)
        if not dates:
            return
        skip_dates = self.intents.get_skip_dates(prop.id, dates[0], dates[-1])

        for scheduled_date in dates:
            order_no = build_sync_order_no(prop.id, scheduled_date)
            try:
                existing = self.ledger.get_sync_order_by_order_no(order_no)
                if scheduled_date in skip_dates:
                    if existing is not None:
                        self._remove_order(order_no)
                        result.orders_deleted += 1
                    else:
                        result.orders_skipped += 1
                    continue
                if existing is not None:
                    result.orders_skipped += 1
                    continue

                try:
                    self.router.create_order(
                        order_no=order_no,
                        order_type="P",
                        date=scheduled_date,
                        address=prop.address,
                        location_name=prop.customer_name,
                        duration=settings.order_duration_minutes,
                        notes=f"Recurring {prop.pickup_frequency} pickup",
                    )
                except OrderAlreadyExistsError:
                    # Another run created it first; record it so later runs dedup locally
                    self.ledger.create_sync_order(SyncOrder(prop.id, order_no, scheduled_date))
                    result.orders_skipped += 1
                    continue

                self.ledger.create_sync_order(SyncOrder(prop.id, order_no, scheduled_date, status=ORDER_ACTIVE))
                result.orders_created += 1
            except Exception as exc:
                logger.warning(f"Failed to sync order {order_no} for property {prop.id}: {exc}")
                result.orders_errored += 1

    def _cleanup_phase(self, result: SyncRunResult, today: date) -> None:
        try:
            orphaned = self.ledger.get_orphaned_sync_property_ids(today.isoformat())
        except Exception as exc:
            logger.error(f"Cleanup phase could not list orphaned properties: {exc}")
            return
        for property_id in orphaned:
            deleted, errored = self._cancel_future_orders(property_id, today)
            result.orders_deleted += deleted
            result.orders_errored += errored

    def _log_phase(self, result: SyncRunResult) -> None:
        logger.info(
            f"Sync run {result.status}: processed={result.properties_processed}, "
            f"created={result.orders_created}, skipped={result.orders_skipped}, "
            f"errored={result.orders_errored}, deleted={result.orders_deleted}, "
            f"detected={result.detection_updates}, assigned={result.days_assigned}"
        )
        try:
            self.ledger.record_sync_run(result.to_record())
        except Exception as exc:
            logger.error(f"Failed to record sync run: {exc}")

    # ── Order removal ──

    def _remove_order(self, order_no: str) -> None:
        """Delete remotely (best effort) and mark the ledger row deleted."""
        try:
            self.router.delete_order(order_no, force=True)
        except Exception as exc:
            # The remote order may already be gone; the ledger still has to move on
            logger.warning(f"Remote delete of {order_no} failed: {exc}")
        self.ledger.mark_sync_order_deleted(order_no)

    def _cancel_future_orders(self, property_id: str, today: date) -> tuple[int, int]:
        deleted = 0
        errored = 0
        for order in self.ledger.get_future_sync_orders_for_property(property_id, today.isoformat()):
            try:
                self._remove_order(order.order_no)
                deleted += 1
            except Exception as exc:
                logger.error(f"Failed to mark {order.order_no} deleted: {exc}")
                errored += 1
        return deleted, errored

    def cancel_future_orders(self, property_id: str) -> int:
        deleted, _ = self._cancel_future_orders(property_id, self._today())
        return deleted

    # ── Schedule edits ──

    def update_property_schedule(
        self,
        property_id: str,
        pickup_day: Optional[str],
        frequency: Optional[str] = None,
    ) -> ScheduleChange:
        """Apply an admin schedule edit and return the schedule now in effect.

        A blank ``pickup_day`` clears the schedule. Changing the day or the
        frequency removes the property's future orders so the next run
        recreates them on the new cadence.
        """
        if pickup_day and parse_weekday(pickup_day) is None:
            raise ValueError(f"Invalid pickup day '{pickup_day}'.")
        normalized_frequency = frequency.strip().lower() if frequency else None
        if normalized_frequency and normalized_frequency not in FREQUENCY_INTERVAL_DAYS:
            raise ValueError(f"Invalid pickup frequency '{frequency}'.")

        prop = self.properties.get_property_by_id(property_id)
        if prop is None:
            raise LookupError(f"Property {property_id} not found.")

        new_day = pickup_day.strip().lower() if pickup_day else None
        new_frequency = normalized_frequency or prop.pickup_frequency
        changed = new_day != prop.pickup_day or new_frequency != prop.pickup_frequency

        self.properties.update_pickup_schedule(
            property_id,
            new_day,
            SOURCE_MANUAL if new_day else None,
            frequency=new_frequency,
        )
        change = ScheduleChange(pickup_day=new_day, frequency=new_frequency)
        if not changed:
            return change
        change.cancelled_orders = self.cancel_future_orders(property_id)
        logger.info(f"Schedule of property {property_id} changed; cancelled {change.cancelled_orders} future orders")
        return change

    # ── Preview ──

    def preview(self) -> SyncPreview:
        """Compute what a run would do without mutating anything."""
        preview = SyncPreview()
        today = self._today()

        if self.detector is not None:
            try:
                summary = self.detector.detect_and_store(persist=False, today=today)
                preview.detection_changes = {pid: change.day for pid, change in summary.changes.items()}
            except Exception as exc:
                preview.errors.append(f"detection: {exc}")

        if self.optimizer is not None:
            try:
                for prop in self.properties.get_approved_properties_without_pickup_day():
                    proposal = self.optimizer.find_optimal_pickup_day(prop, persist=False, today=today)
                    if proposal is not None:
                        preview.day_proposals[prop.id] = proposal.pickup_day
            except Exception as exc:
                preview.errors.append(f"backfill: {exc}")

        for prop in self.properties.get_properties_for_sync():
            if not prop.pickup_day or not prop.has_active_subscription:
                continue
            # Detected changes apply before the sync phase in a real run
            pickup_day = preview.detection_changes.get(prop.id, prop.pickup_day)
            item = PropertyPreview(property_id=prop.id, pickup_day=pickup_day, frequency=prop.pickup_frequency)
            dates = generate_pickup_dates(
                pickup_day,
                prop.pickup_frequency,
                self.window_days,
                anchor_date=prop.pickup_anchor_date,
                today=today,
            )
            skip_dates = self.intents.get_skip_dates(prop.id, dates[0], dates[-1]) if dates else set()
            for scheduled_date in dates:
                if scheduled_date in skip_dates:
                    item.skipped_by_customer.append(scheduled_date)
                elif self.ledger.get_sync_order_by_order_no(build_sync_order_no(prop.id, scheduled_date)):
                    item.already_synced.append(scheduled_date)
                else:
                    item.would_create.append(scheduled_date)
            preview.properties.append(item)
        return preview
