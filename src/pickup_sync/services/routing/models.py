"""Router API domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class PlanningState(str, Enum):
    NEW = "N"
    RUNNING = "R"
    CANCELLED = "C"
    FINISHED = "F"
    ERROR = "E"

    @classmethod
    def from_code(cls, code: str | None) -> "PlanningState":
        try:
            return cls(code)
        except ValueError:
            return cls.ERROR


@dataclass(slots=True)
class PlanningResult:
    planning_id: Optional[int]
    orders_with_invalid_location: List[str] = field(default_factory=list)
    missing_orders: List[str] = field(default_factory=list)


@dataclass(slots=True)
class SchedulingInfo:
    order_scheduled: bool
    driver_name: Optional[str] = None
    driver_serial: Optional[str] = None
    scheduled_at_dt: Optional[str] = None
    stop_number: Optional[int] = None

    @property
    def scheduled_date(self) -> Optional[str]:
        """Date part of ``scheduledAtDt`` (``YYYY-MM-DD HH:MM:SS``)."""
        if not self.scheduled_at_dt:
            return None
        return self.scheduled_at_dt[:10]


@dataclass(slots=True)
class RouterStop:
    order_no: Optional[str]
    stop_number: Optional[int]
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]


@dataclass(slots=True)
class RouterRoute:
    date: str
    driver_serial: Optional[str]
    driver_name: Optional[str]
    stops: List[RouterStop]


@dataclass(slots=True)
class RouterOrder:
    order_no: str
    date: str
    address: Optional[str]
