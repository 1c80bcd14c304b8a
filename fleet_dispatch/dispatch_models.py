# fleet_dispatch/dispatch_models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


STATUS_OPEN = "Open"
STATUS_CONFIRMATION = "Confirmation"
STATUS_READY = "Ready"
STATUS_IN_PROGRESS = "In Progress"
STATUS_ON_HOLD = "On Hold"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})


@dataclass
class Vehicle:
    id: str
    name: str
    license_plate: Optional[str] = None


@dataclass
class WorkOrder:
    """
    Orden de trabajo tal como llega de la base de datos.

    `activity_log` es una lista de dicts `{activity, timestamp, userId?}`
    (opcionalmente con `type`/`from`/`to` en el formato estructurado).
    """
    id: str
    status: str
    created_at: datetime | str
    location_id: Optional[str] = None
    priority: Optional[str] = None
    assigned_technician_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    service_category_id: Optional[str] = None
    sla_due: Optional[datetime | str] = None
    completed_at: Optional[datetime | str] = None
    activity_log: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class Technician:
    id: str
    name: str
    location_id: Optional[str] = None
    specializations: List[str] = field(default_factory=list)
    status: str = "available"  # available | busy | offline
    max_concurrent_orders: Optional[int] = None


@dataclass
class TechnicianAvailability:
    technician_id: str
    is_available: bool
    active_work_orders_count: int
    max_concurrent_orders: int
    on_shift: bool = True
    completion_rate: float = 0.0


@dataclass
class AssignmentCriteria:
    match_location: bool = True
    match_specialization: bool = False
    consider_workload: bool = True
    prefer_same_location: bool = True
    max_concurrent_orders: int = 5


@dataclass
class AssignmentContext:
    work_order: WorkOrder
    available_technicians: List[Technician]
    technician_availability: Dict[str, TechnicianAvailability]
    criteria: AssignmentCriteria = field(default_factory=AssignmentCriteria)


@dataclass
class AssignmentCandidate:
    technician_id: str
    technician_name: str
    current_workload: int
    max_concurrent_orders: int
    availability_score: float
    performance_score: float
    total_score: float
    specialization_match: Optional[bool] = None  # None = no evaluado
    distance_km: float = 0.0
    on_shift: bool = True
    has_capacity: bool = True
    same_location: bool = True


@dataclass
class AssignmentDecision:
    technician_id: Optional[str]
    technician_name: Optional[str]
    score: float
    decision_factors: Dict[str, Any]
    candidates: List[AssignmentCandidate] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.technician_id is not None


@dataclass
class StatusSegment:
    status: str
    start: datetime
    end: datetime
    duration_ms: int


@dataclass
class TimelineWorkOrder:
    work_order: WorkOrder
    status_history: List[StatusSegment]
    total_duration_ms: int
    current_status_duration_ms: int
    vehicle: Optional[Vehicle] = None


@dataclass
class SLAInfo:
    status: str  # on-track | at-risk | overdue | completed | no-sla
    deadline: Optional[datetime] = None
    time_remaining_ms: int = 0
    time_elapsed_ms: int = 0
    total_sla_ms: int = 0
    progress_percent: float = 0.0
    formatted_time_remaining: str = "No SLA"
    sla_target_hours: Optional[float] = None
    met_sla: Optional[bool] = None
