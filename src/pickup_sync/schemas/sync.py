"""Request and response schemas for sync, schedule and feasibility endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SyncRunResponse(BaseModel):
    status: str
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


class PropertyPreviewModel(BaseModel):
    property_id: str
    pickup_day: str
    frequency: str
    would_create: List[str] = Field(default_factory=list)
    already_synced: List[str] = Field(default_factory=list)
    skipped_by_customer: List[str] = Field(default_factory=list)


class SyncPreviewResponse(BaseModel):
    orders_to_create: int
    detection_changes: Dict[str, str] = Field(default_factory=dict)
    day_proposals: Dict[str, str] = Field(default_factory=dict)
    properties: List[PropertyPreviewModel] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class ScheduleUpdateRequest(BaseModel):
    pickup_day: Optional[str] = Field(default=None, description="Weekday name; null or empty clears the schedule.")
    frequency: Optional[str] = Field(default=None, description="weekly, bi-weekly or monthly.")


class ScheduleUpdateResponse(BaseModel):
    property_id: str
    pickup_day: Optional[str] = None
    frequency: Optional[str] = None
    cancelled_orders: int = 0


class FeasibilityRequest(BaseModel):
    user_id: str
    address: str
    target_day: Optional[str] = None


class FeasibilityQueuedResponse(BaseModel):
    property_id: str
    status: str = "queued"


class DayAssignmentResponse(BaseModel):
    property_id: str
    pickup_day: str
    insertion_cost_miles: float
    confidence: float
    routes_compared: int
    best_route_id: Optional[str] = None
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    driver_name: Optional[str] = None
