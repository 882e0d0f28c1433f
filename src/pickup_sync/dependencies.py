"""Service wiring for the API and the scheduled job.

Each factory is cached so a process shares one router client and one set of
stores. Routes receive them through ``Depends`` so tests can swap them with
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from .config import settings
from .persistence.accounts import SupabaseAuditLog, SupabaseSelectionStore, SupabaseUserStore
from .persistence.database import (
    SupabaseCollectionIntentStore,
    SupabasePropertyStore,
    SupabaseRouteSource,
    SupabaseSyncLedger,
    SupabaseZoneStore,
)
from .services.billing.activation import SelectionActivator
from .services.billing.stripe_gateway import StripeBillingGateway
from .services.feasibility.prober import FeasibilityApprovalFlow, FeasibilityProber
from .services.geocoding import GoogleGeocoder
from .services.notifications import SupabaseNotifier
from .services.routing.route_source import RouterRouteSource
from .services.routing.router_client import RouterClient
from .services.scheduling.detector import PickupDayDetectionService
from .services.scheduling.optimizer import InsertionCostOptimizer
from .services.sync.orchestrator import SyncOrchestrator


@lru_cache()
def get_router_client() -> RouterClient:
    return RouterClient()


@lru_cache()
def get_property_store() -> SupabasePropertyStore:
    return SupabasePropertyStore()


@lru_cache()
def get_optimizer() -> InsertionCostOptimizer:
    properties = get_property_store()
    if settings.optimization_route_source == "router":
        routes = RouterRouteSource(get_router_client())
    else:
        routes = SupabaseRouteSource()
    geocoder = GoogleGeocoder() if settings.google_maps_api_key else None
    return InsertionCostOptimizer(properties, routes, geocoder=geocoder, zones=SupabaseZoneStore())


@lru_cache()
def get_orchestrator() -> SyncOrchestrator:
    router = get_router_client()
    properties = get_property_store()
    return SyncOrchestrator(
        properties=properties,
        ledger=SupabaseSyncLedger(),
        intents=SupabaseCollectionIntentStore(),
        router=router,
        detector=PickupDayDetectionService(router, properties),
        optimizer=get_optimizer(),
    )


@lru_cache()
def get_approval_flow() -> FeasibilityApprovalFlow:
    router = get_router_client()
    properties = get_property_store()
    audit = SupabaseAuditLog()
    activator = SelectionActivator(
        selections=SupabaseSelectionStore(),
        users=SupabaseUserStore(),
        billing=StripeBillingGateway(),
        audit=audit,
        router=router,
        properties=properties,
    )
    return FeasibilityApprovalFlow(
        prober=FeasibilityProber(router),
        properties=properties,
        activator=activator,
        notifier=SupabaseNotifier(),
        audit=audit,
    )
