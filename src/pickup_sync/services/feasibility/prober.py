"""Router feasibility probe for candidate addresses.

A probe creates a throwaway order at the address, asks the router to plan just
that order, polls the planning job and reads back whether the order landed on a
route. The temporary order is force-deleted before the probe returns, whatever
the outcome. A probe blocks its caller for up to about a minute, so request
handlers should run it as a background task.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional

from ...config import settings
from ...models.domain import SOURCE_FEASIBILITY_CONFIRMED, WEEKDAYS
from ...persistence.base import AuditLog, PropertyStore
from ..billing.activation import SelectionActivator
from ..notifications import Notifier, approval_message
from ..routing.models import PlanningState
from ..routing.router_client import RouterClient
from ..scheduling.cadence import next_business_day, next_weekday_after, parse_weekday

logger = logging.getLogger(__name__)


class ProbeState(str, Enum):
    CREATING = "creating"
    PLANNING = "planning"
    POLLING = "polling"
    SCHEDULED = "scheduled"
    NOT_SCHEDULABLE = "not_schedulable"
    INVALID_ADDRESS = "invalid_address"
    TIMED_OUT = "timed_out"
    ERROR = "error"


TERMINAL_STATES = frozenset(
    {
        ProbeState.SCHEDULED,
        ProbeState.NOT_SCHEDULABLE,
        ProbeState.INVALID_ADDRESS,
        ProbeState.TIMED_OUT,
        ProbeState.ERROR,
    }
)


@dataclass(slots=True)
class FeasibilityResult:
    state: ProbeState
    test_date: Optional[str] = None
    pickup_day: Optional[str] = None
    driver_name: Optional[str] = None

    @property
    def feasible(self) -> bool:
        return self.state is ProbeState.SCHEDULED

    def to_audit(self) -> dict:
        payload = asdict(self)
        payload["state"] = self.state.value
        payload["feasible"] = self.feasible
        return payload


def probe_target_date(target_day: str | None, today: date) -> date:
    """Next occurrence of ``target_day`` after today, else the next weekday."""
    weekday = parse_weekday(target_day)
    if weekday is None:
        return next_business_day(today)
    return next_weekday_after(today, weekday)


class FeasibilityProber:
    def __init__(
        self,
        router: RouterClient,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.router = router
        self.poll_interval = poll_interval if poll_interval is not None else settings.feasibility_poll_interval_seconds
        self.max_attempts = max_attempts or settings.feasibility_max_poll_attempts
        self._sleep = sleep
        self._clock = clock

    def _temp_order_no(self, correlation_id: str) -> str:
        return f"FEASIBILITY-{correlation_id[:8].upper()}-{int(self._clock() * 1000)}"

    def _poll(self, planning_id: int) -> PlanningState:
        status = self.router.get_planning_status(planning_id)
        attempts = 0
        while status in (PlanningState.RUNNING, PlanningState.NEW) and attempts < self.max_attempts:
            self._sleep(self.poll_interval)
            status = self.router.get_planning_status(planning_id)
            attempts += 1
        return status

    def probe(
        self,
        address: str,
        correlation_id: str,
        target_day: str | None = None,
        today: date | None = None,
    ) -> FeasibilityResult:
        test_date = probe_target_date(target_day, today or date.today()).isoformat()
        order_no = self._temp_order_no(correlation_id)
        result = FeasibilityResult(state=ProbeState.ERROR, test_date=test_date)
        state = ProbeState.CREATING

        try:
            self.router.create_order(
                order_no=order_no,
                order_type="P",
                date=test_date,
                address=address,
                location_name="Feasibility Check",
                duration=settings.order_duration_minutes,
                notes="Temporary order for address feasibility check",
            )

            state = ProbeState.PLANNING
            planning = self.router.start_planning(date=test_date, use_orders=[order_no], start_with="CURRENT")
            if order_no in planning.orders_with_invalid_location:
                result = FeasibilityResult(state=ProbeState.INVALID_ADDRESS, test_date=test_date)
            elif planning.planning_id is None:
                logger.error(f"Feasibility planning for {order_no} returned no planning id")
            else:
                state = ProbeState.POLLING
                final_status = self._poll(planning.planning_id)
                if final_status is not PlanningState.FINISHED:
                    result = FeasibilityResult(state=ProbeState.TIMED_OUT, test_date=test_date)
                else:
                    info = self.router.get_scheduling_info(order_no)
                    if info.order_scheduled:
                        scheduled_date = info.scheduled_date or test_date
                        result = FeasibilityResult(
                            state=ProbeState.SCHEDULED,
                            test_date=scheduled_date,
                            pickup_day=WEEKDAYS[date.fromisoformat(scheduled_date).weekday()],
                            driver_name=info.driver_name,
                        )
                    else:
                        result = FeasibilityResult(state=ProbeState.NOT_SCHEDULABLE, test_date=test_date)
        except Exception as exc:
            logger.error(f"Feasibility probe for {correlation_id} failed while {state.value}: {exc}")
            result = FeasibilityResult(state=ProbeState.ERROR, test_date=test_date)
        finally:
            try:
                self.router.delete_order(order_no, force=True)
            except Exception as exc:
                logger.error(f"Failed to clean up feasibility order {order_no}: {exc}")

        return result


class FeasibilityApprovalFlow:
    """Probe an address and auto-approve the property when the router can serve it."""

    def __init__(
        self,
        prober: FeasibilityProber,
        properties: PropertyStore,
        activator: SelectionActivator,
        notifier: Notifier,
        audit: AuditLog,
    ) -> None:
        self.prober = prober
        self.properties = properties
        self.activator = activator
        self.notifier = notifier
        self.audit = audit

    def run(
        self,
        property_id: str,
        user_id: str,
        address: str,
        target_day: str | None = None,
    ) -> FeasibilityResult:
        result = self.prober.probe(address, property_id, target_day=target_day)

        try:
            self.audit.create_audit_log(
                user_id,
                "auto_feasibility_check",
                "property",
                property_id,
                {**result.to_audit(), "automated": True},
            )
        except Exception as exc:
            logger.error(f"Feasibility audit log failed for property {property_id}: {exc}")

        if not result.feasible:
            logger.info(f"Auto-feasibility failed for property {property_id}: {result.state.value}")
            return result

        if not self.properties.approve_if_pending(property_id):
            logger.info(f"Property {property_id} already decided, skipping auto-approval")
            return result

        if result.pickup_day:
            self.properties.update_pickup_schedule(property_id, result.pickup_day, SOURCE_FEASIBILITY_CONFIRMED)

        activation = self.activator.activate(property_id, user_id, source="auto_approval")
        nothing_to_activate = activation.activated == 0 and activation.failed == 0
        if activation.activated > 0 or nothing_to_activate:
            subject, body = approval_message(address, result.pickup_day)
            try:
                self.notifier.send_service_update(user_id, subject, body)
            except Exception as exc:
                logger.error(f"Auto-approval notification failed for property {property_id}: {exc}")
        else:
            logger.warning(
                f"Property {property_id} approved but all {activation.failed} activations failed; "
                "customer not notified"
            )
        return result

    def run_safely(self, property_id: str, user_id: str, address: str, target_day: str | None = None) -> None:
        """Entry point for background tasks: never lets an exception escape."""
        try:
            self.run(property_id, user_id, address, target_day=target_day)
        except Exception:
            logger.exception(f"Background feasibility approval crashed for property {property_id}")
