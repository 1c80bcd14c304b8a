from pydantic import BaseModel, Field
from typing import Any, Optional
from datetime import datetime

class TechnicianBase(BaseModel):
    name: str
    location_id: Optional[str] = None
    specializations: list[str] = Field(default_factory=list)
    status: str = "available"
    max_concurrent_orders: Optional[int] = None

class TechnicianCreate(TechnicianBase):
    pass

class Technician(TechnicianBase):
    id: str
    class Config:
        from_attributes = True

class VehicleBase(BaseModel):
    name: str
    license_plate: Optional[str] = None

class VehicleCreate(VehicleBase):
    pass

class Vehicle(VehicleBase):
    id: str
    class Config:
        from_attributes = True

class ActivityEntry(BaseModel):
    activity: str
    timestamp: str
    userId: Optional[str] = None
    type: Optional[str] = None
    from_status: Optional[str] = Field(default=None, alias="from")
    to_status: Optional[str] = Field(default=None, alias="to")

    class Config:
        populate_by_name = True

class WorkOrderBase(BaseModel):
    status: str = "Open"
    priority: Optional[str] = None
    location_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    service_category_id: Optional[str] = None
    sla_due: Optional[datetime] = None

class WorkOrderCreate(WorkOrderBase):
    created_at: Optional[datetime] = None

class WorkOrder(WorkOrderBase):
    id: str
    assigned_technician_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    activity_log: list[ActivityEntry] = Field(default_factory=list)
    class Config:
        from_attributes = True

class StatusChangeRequest(BaseModel):
    status: str
    user_id: Optional[str] = None
    direct_start: bool = False

class Availability(BaseModel):
    technician_id: str
    is_available: bool
    active_work_orders_count: int
    max_concurrent_orders: int
    on_shift: bool
    completion_rate: float
    class Config:
        from_attributes = True

class AssignmentCandidate(BaseModel):
    technician_id: str
    technician_name: str
    current_workload: int
    max_concurrent_orders: int
    availability_score: float
    performance_score: float
    total_score: float
    specialization_match: Optional[bool] = None
    distance_km: float = 0.0
    on_shift: bool = True
    has_capacity: bool = True
    same_location: bool = True
    class Config:
        from_attributes = True

class AssignmentDecision(BaseModel):
    work_order_id: str
    technician_id: Optional[str] = None
    technician_name: Optional[str] = None
    score: float
    decision_factors: dict[str, Any]
    candidates: list[AssignmentCandidate] = Field(default_factory=list)
    persisted: bool = False

class StatusSegment(BaseModel):
    status: str
    start: datetime
    end: datetime
    duration_ms: int
    class Config:
        from_attributes = True

class Timeline(BaseModel):
    work_order_id: str
    status: str
    status_history: list[StatusSegment]
    total_duration_ms: int
    current_status_duration_ms: int
    total_duration: str
    current_status_duration: str
    vehicle: Optional[Vehicle] = None

class SLAStatus(BaseModel):
    work_order_id: str
    status: str
    deadline: Optional[datetime] = None
    time_remaining_ms: int
    time_elapsed_ms: int
    total_sla_ms: int
    progress_percent: float
    formatted_time_remaining: str
    sla_target_hours: Optional[float] = None
    met_sla: Optional[bool] = None

class QueueItem(BaseModel):
    work_order_id: str
    priority: int
    status: str
    retry_count: int
    max_retries: int
    next_retry_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class QueueRequest(BaseModel):
    priority: int = 0
    max_retries: int = 3
