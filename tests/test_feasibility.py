from datetime import date

import pytest

from pickup_sync.models.domain import PendingSelection, Property, User
from pickup_sync.services.billing.activation import SelectionActivator
from pickup_sync.services.feasibility.prober import (
    TERMINAL_STATES,
    FeasibilityApprovalFlow,
    FeasibilityProber,
    ProbeState,
    probe_target_date,
)
from pickup_sync.services.routing.models import PlanningResult, PlanningState, SchedulingInfo

from conftest import (
    TODAY,
    FakeRouter,
    InMemoryPropertyStore,
    InMemorySelectionStore,
    InMemoryUserStore,
    RecordingAuditLog,
)


def _prober(router: FakeRouter, max_attempts: int = 3) -> tuple[FeasibilityProber, list[float]]:
    sleeps: list[float] = []
    prober = FeasibilityProber(router, poll_interval=2.0, max_attempts=max_attempts, sleep=sleeps.append, clock=lambda: 1700000000.0)
    return prober, sleeps


def _scheduled_router() -> FakeRouter:
    router = FakeRouter()
    router.planning_statuses = [PlanningState.RUNNING, PlanningState.FINISHED]
    router.scheduling = SchedulingInfo(order_scheduled=True, driver_name="Sam", scheduled_at_dt="2026-03-02 09:15:00")
    return router


def test_probe_target_date_uses_requested_weekday() -> None:
    assert probe_target_date("thursday", TODAY) == date(2026, 2, 26)
    assert probe_target_date("wednesday", TODAY) == date(2026, 3, 4)
    assert probe_target_date(None, date(2026, 2, 27)) == date(2026, 3, 2)


def test_scheduled_probe_reports_day_and_driver() -> None:
    router = _scheduled_router()
    prober, sleeps = _prober(router)

    result = prober.probe("12 Oak Street", "a1b2c3d4-rest", today=TODAY)

    assert result.state is ProbeState.SCHEDULED
    assert result.feasible
    assert result.test_date == "2026-03-02"
    assert result.pickup_day == "monday"
    assert result.driver_name == "Sam"
    assert sleeps == [2.0]
    order_no = router.created[0]["order_no"]
    assert order_no == "FEASIBILITY-A1B2C3D4-1700000000000"
    assert router.deleted == [(order_no, True)]


def _router_for(state: ProbeState) -> FakeRouter:
    router = FakeRouter()
    if state is ProbeState.SCHEDULED:
        return _scheduled_router()
    if state is ProbeState.NOT_SCHEDULABLE:
        router.scheduling = SchedulingInfo(order_scheduled=False)
    elif state is ProbeState.INVALID_ADDRESS:
        router.planning = PlanningResult(planning_id=7, orders_with_invalid_location=[])
        router.start_planning = lambda date, use_orders, start_with="CURRENT": PlanningResult(
            planning_id=7, orders_with_invalid_location=list(use_orders)
        )
    elif state is ProbeState.TIMED_OUT:
        router.planning_statuses = [PlanningState.RUNNING]
    elif state is ProbeState.ERROR:
        router.planning = PlanningResult(planning_id=None)
    return router


@pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_temporary_order_deleted_exactly_once(state: ProbeState) -> None:
    router = _router_for(state)
    prober, _ = _prober(router)

    result = prober.probe("12 Oak Street", "prop-0001", target_day="monday", today=TODAY)

    assert result.state is state
    assert len(router.deleted) == 1
    assert router.deleted[0] == (router.created[0]["order_no"], True)


def test_polling_stops_after_max_attempts() -> None:
    router = FakeRouter()
    router.planning_statuses = [PlanningState.RUNNING]
    prober, sleeps = _prober(router, max_attempts=4)

    result = prober.probe("12 Oak Street", "prop-0001", today=TODAY)

    assert result.state is ProbeState.TIMED_OUT
    assert len(sleeps) == 4


def test_cancelled_planning_counts_as_timed_out() -> None:
    router = FakeRouter()
    router.planning_statuses = [PlanningState.CANCELLED]
    prober, _ = _prober(router)

    assert prober.probe("12 Oak Street", "prop-0001", today=TODAY).state is ProbeState.TIMED_OUT


def test_create_failure_is_error_and_still_cleans_up() -> None:
    router = FakeRouter()
    router.fail_create_for = {"FEASIBILITY-PROP-000-1700000000000"}
    prober, _ = _prober(router)

    result = prober.probe("12 Oak Street", "prop-0001", today=TODAY)

    assert result.state is ProbeState.ERROR
    assert router.deleted == [("FEASIBILITY-PROP-000-1700000000000", True)]


def test_cleanup_failure_does_not_change_result() -> None:
    router = _scheduled_router()
    router.fail_delete = True
    prober, _ = _prober(router)

    assert prober.probe("12 Oak Street", "prop-0001", today=TODAY).state is ProbeState.SCHEDULED


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send_service_update(self, user_id, subject, body) -> None:
        self.sent.append((user_id, subject, body))


class DummyBilling:
    def __init__(self, prices=None, fail=False) -> None:
        self.prices = prices if prices is not None else {"svc-trash": "price_1"}
        self.fail = fail
        self.subscriptions: list[tuple] = []

    def get_default_prices(self):
        return self.prices

    def create_subscription(self, customer_id, price_id, quantity, metadata):
        if self.fail:
            raise RuntimeError("card declined")
        self.subscriptions.append((customer_id, price_id, quantity, metadata))
        return {"id": "sub_1"}


def _flow(router: FakeRouter, prop: Property, selections=None, billing=None):
    properties = InMemoryPropertyStore([prop])
    audit = RecordingAuditLog()
    notifier = RecordingNotifier()
    activator = SelectionActivator(
        selections=InMemorySelectionStore(selections),
        users=InMemoryUserStore([User(id="user-1", billing_customer_id="cus_1")]),
        billing=billing or DummyBilling(),
        audit=audit,
    )
    prober, _ = _prober(router)
    flow = FeasibilityApprovalFlow(prober, properties, activator, notifier, audit)
    return flow, audit, notifier


def _pending_property() -> Property:
    return Property(id="prop-0001", user_id="user-1", address="12 Oak Street")


def test_feasible_address_is_approved_scheduled_and_notified() -> None:
    prop = _pending_property()
    selection = PendingSelection(id="sel-1", property_id=prop.id, user_id="user-1", service_id="svc-trash", use_sticker=True)
    flow, audit, notifier = _flow(_scheduled_router(), prop, [selection])

    result = flow.run(prop.id, "user-1", prop.address)

    assert result.feasible
    assert prop.service_status == "approved"
    assert prop.pickup_day == "monday"
    assert prop.pickup_day_source == "feasibility_confirmed"
    actions = [entry["action"] for entry in audit.entries]
    assert actions == ["auto_feasibility_check", "subscriptions_activated"]
    assert audit.entries[0]["details"]["automated"] is True
    assert audit.entries[1]["details"]["source"] == "auto_approval"
    assert notifier.sent[0][1] == "Address Approved"
    assert "12 Oak Street" in notifier.sent[0][2]


def test_infeasible_address_stays_pending() -> None:
    prop = _pending_property()
    flow, audit, notifier = _flow(_router_for(ProbeState.NOT_SCHEDULABLE), prop)

    flow.run(prop.id, "user-1", prop.address)

    assert prop.service_status == "pending_review"
    assert [entry["action"] for entry in audit.entries] == ["auto_feasibility_check"]
    assert notifier.sent == []


def test_already_decided_property_is_left_alone() -> None:
    prop = _pending_property()
    prop.service_status = "denied"
    flow, _, notifier = _flow(_scheduled_router(), prop)

    flow.run(prop.id, "user-1", prop.address)

    assert prop.service_status == "denied"
    assert prop.pickup_day is None
    assert notifier.sent == []


def test_customer_not_notified_when_every_activation_fails() -> None:
    prop = _pending_property()
    selection = PendingSelection(id="sel-1", property_id=prop.id, user_id="user-1", service_id="svc-trash")
    flow, _, notifier = _flow(_scheduled_router(), prop, [selection], billing=DummyBilling(fail=True))

    flow.run(prop.id, "user-1", prop.address)

    assert prop.service_status == "approved"
    assert notifier.sent == []


def test_run_safely_swallows_unexpected_errors() -> None:
    prop = _pending_property()
    flow, _, _ = _flow(_scheduled_router(), prop)
    flow.properties = None

    flow.run_safely(prop.id, "user-1", prop.address)
