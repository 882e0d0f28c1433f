"""Conversion of pending service selections into billing subscriptions.

Three approval paths can race to activate the same property: auto-approval
after a feasibility probe, an admin's individual decision and a bulk decision.
Selections are claimed with an atomic delete-returning so only one caller ever
sees them. Callers that already removed the rows inside their own transaction
pass them as ``preloaded_selections``; those rows are written back when the
customer turns out to have no billing identity, so nothing is lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Protocol, Sequence

from ...config import settings
from ...models.domain import PendingSelection
from ...persistence.base import AuditLog, PropertyStore, SelectionStore, UserStore
from ..routing.router_client import RouterClient
from ..scheduling.cadence import next_business_day

logger = logging.getLogger(__name__)


class BillingGateway(Protocol):
    def get_default_prices(self) -> dict[str, Optional[str]]: ...

    def create_subscription(self, customer_id: str, price_id: str, quantity: int, metadata: dict[str, str]) -> Any: ...


@dataclass(slots=True)
class ActivationResult:
    activated: int = 0
    failed: int = 0
    rental_deliveries: int = 0


def _selection_payload(selection: PendingSelection) -> dict[str, Any]:
    return {
        "serviceId": selection.service_id,
        "quantity": selection.quantity,
        "useSticker": selection.use_sticker,
    }


class SelectionActivator:
    def __init__(
        self,
        selections: SelectionStore,
        users: UserStore,
        billing: BillingGateway,
        audit: AuditLog,
        router: RouterClient | None = None,
        properties: PropertyStore | None = None,
    ) -> None:
        self.selections = selections
        self.users = users
        self.billing = billing
        self.audit = audit
        self.router = router
        self.properties = properties

    def activate(
        self,
        property_id: str,
        user_id: str,
        source: str = "unknown",
        preloaded_selections: Sequence[PendingSelection] | None = None,
    ) -> ActivationResult:
        user = self.users.get_user_by_id(user_id)
        if user is None or not user.billing_customer_id:
            logger.error(f"User {user_id} has no billing customer id; pending selections left in place")
            if not preloaded_selections:
                return ActivationResult()
            self.selections.save_pending_selections(
                property_id, user_id, [_selection_payload(sel) for sel in preloaded_selections]
            )
            result = ActivationResult(failed=len(preloaded_selections))
            self._audit(property_id, user_id, source, result, len(preloaded_selections), restored=True)
            return result

        selections = (
            list(preloaded_selections)
            if preloaded_selections is not None
            else self.selections.claim_pending_selections(property_id)
        )
        if not selections:
            return ActivationResult()

        result = ActivationResult()
        rentals: list[PendingSelection] = []
        try:
            prices = self.billing.get_default_prices()
            for selection in selections:
                price_id = prices.get(selection.service_id)
                if not price_id:
                    logger.error(f"No default price for product {selection.service_id}")
                    result.failed += 1
                    continue
                try:
                    self.billing.create_subscription(
                        user.billing_customer_id,
                        price_id,
                        selection.quantity,
                        {
                            "propertyId": property_id,
                            "equipmentType": "own_can" if selection.use_sticker else "rental",
                        },
                    )
                except Exception as exc:
                    logger.error(f"Subscription creation failed for selection {selection.id}: {exc}")
                    result.failed += 1
                    continue
                result.activated += 1
                if not selection.use_sticker:
                    rentals.append(selection)
        except Exception as exc:
            logger.error(f"Billing gateway error while activating property {property_id}: {exc}")
            result = ActivationResult(failed=len(selections))
            rentals = []

        result.rental_deliveries = self._schedule_rental_deliveries(property_id, rentals)
        self._audit(property_id, user_id, source, result, len(selections))
        return result

    def _schedule_rental_deliveries(self, property_id: str, rentals: Sequence[PendingSelection]) -> int:
        if not rentals or self.router is None or self.properties is None:
            return 0
        prop = self.properties.get_property_by_id(property_id)
        if prop is None:
            return 0

        delivery_date = next_business_day(date.today()).isoformat()
        scheduled = 0
        for selection in rentals:
            order_no = f"DELIVERY-{property_id[:8].upper()}-{selection.id[:8].upper()}"
            try:
                self.router.create_order(
                    order_no=order_no,
                    order_type="D",
                    date=delivery_date,
                    address=prop.address,
                    location_name=prop.customer_name,
                    duration=settings.order_duration_minutes,
                    notes=f"Rental can delivery ({selection.quantity})",
                )
                scheduled += 1
            except Exception as exc:
                logger.warning(f"Could not schedule rental delivery {order_no}: {exc}")
        return scheduled

    def _audit(
        self,
        property_id: str,
        user_id: str,
        source: str,
        result: ActivationResult,
        total: int,
        restored: bool = False,
    ) -> None:
        details = {
            "source": source,
            "automated": source == "auto_approval",
            "activated": result.activated,
            "failed": result.failed,
            "totalSelections": total,
            "rentalDeliveries": result.rental_deliveries,
        }
        if restored:
            details["restored"] = True
        try:
            self.audit.create_audit_log(user_id, "subscriptions_activated", "property", property_id, details)
        except Exception as exc:
            logger.error(f"Activation audit log failed for property {property_id}: {exc}")
