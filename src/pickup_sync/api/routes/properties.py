"""Per-property schedule, feasibility and day-assignment endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from ...dependencies import get_approval_flow, get_optimizer, get_orchestrator
from ...schemas.sync import (
    DayAssignmentResponse,
    FeasibilityQueuedResponse,
    FeasibilityRequest,
    ScheduleUpdateRequest,
    ScheduleUpdateResponse,
)
from ...services.feasibility.prober import FeasibilityApprovalFlow
from ...services.scheduling.optimizer import InsertionCostOptimizer
from ...services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["properties"])


@router.put("/{property_id}/schedule", response_model=ScheduleUpdateResponse, status_code=status.HTTP_200_OK)
def update_schedule(
    property_id: str,
    payload: ScheduleUpdateRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> ScheduleUpdateResponse:
    try:
        change = orchestrator.update_property_schedule(property_id, payload.pickup_day, payload.frequency)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error updating schedule for property {property_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update schedule: {str(exc)}",
        ) from exc
    return ScheduleUpdateResponse(
        property_id=property_id,
        pickup_day=change.pickup_day,
        frequency=change.frequency,
        cancelled_orders=change.cancelled_orders,
    )


@router.post(
    "/{property_id}/feasibility",
    response_model=FeasibilityQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def queue_feasibility_check(
    property_id: str,
    payload: FeasibilityRequest,
    background_tasks: BackgroundTasks,
    flow: FeasibilityApprovalFlow = Depends(get_approval_flow),
) -> FeasibilityQueuedResponse:
    if not payload.address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address is required.")
    background_tasks.add_task(flow.run_safely, property_id, payload.user_id, payload.address, payload.target_day)
    return FeasibilityQueuedResponse(property_id=property_id)


@router.post("/{property_id}/assign-day", response_model=DayAssignmentResponse, status_code=status.HTTP_200_OK)
def assign_day(
    property_id: str,
    optimizer: InsertionCostOptimizer = Depends(get_optimizer),
) -> DayAssignmentResponse:
    try:
        result = optimizer.assign_pickup_day(property_id)
    except Exception as exc:
        logger.exception(f"Error assigning pickup day for property {property_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to assign pickup day: {str(exc)}",
        ) from exc
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pickup day could be proposed for property {property_id} (no comparable routes or location).",
        )
    return DayAssignmentResponse(
        property_id=property_id,
        pickup_day=result.pickup_day,
        insertion_cost_miles=result.insertion_cost_miles,
        confidence=result.confidence,
        routes_compared=result.routes_compared,
        best_route_id=result.best_route_id,
        zone_id=result.zone_id,
        zone_name=result.zone_name,
        driver_name=result.driver_name,
    )
