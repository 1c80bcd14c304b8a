from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from datetime import datetime, timezone
from typing import Optional
from ..database import get_session
from ..activity import InvalidStatusTransition, apply_status_change
from ..dispatch_service import WorkOrderNotFound, assign_work_order, preview_assignment
from ..dispatch_models import AssignmentDecision
from ..sla import get_sla_status
from ..timeline import build_timeline, format_duration
from .. import crud, schemas

router = APIRouter(prefix="/work-orders", tags=["work-orders"])

def _get_or_404(session: Session, work_order_id: str):
    row = crud.get_work_order(session, work_order_id)
    if not row:
        raise HTTPException(status_code=404, detail="Work order not found")
    return row

def _now(value: Optional[datetime] = None) -> datetime:
    return value or datetime.now(timezone.utc)

def _decision_out(work_order_id: str, decision: AssignmentDecision, persisted: bool) -> schemas.AssignmentDecision:
    return schemas.AssignmentDecision(
        work_order_id=work_order_id,
        technician_id=decision.technician_id,
        technician_name=decision.technician_name,
        score=decision.score,
        decision_factors=decision.decision_factors,
        candidates=[schemas.AssignmentCandidate.model_validate(c) for c in decision.candidates],
        persisted=persisted,
    )

@router.post("/", response_model=schemas.WorkOrder, status_code=201)
def create_work_order(payload: schemas.WorkOrderCreate, session: Session = Depends(get_session)):
    if payload.vehicle_id and not crud.get_vehicle(session, payload.vehicle_id):
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return crud.create_work_order(session, **payload.model_dump())

@router.get("/{work_order_id}", response_model=schemas.WorkOrder)
def get_work_order(work_order_id: str, session: Session = Depends(get_session)):
    return _get_or_404(session, work_order_id)

@router.post("/{work_order_id}/status", response_model=schemas.WorkOrder)
def change_status(work_order_id: str, payload: schemas.StatusChangeRequest, session: Session = Depends(get_session)):
    row = _get_or_404(session, work_order_id)
    wo = crud.to_domain_work_order(row)
    try:
        apply_status_change(wo, payload.status, _now(), user_id=payload.user_id, direct_start=payload.direct_start)
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return crud.save_domain_work_order(session, row, wo)

@router.post("/{work_order_id}/assignment/preview", response_model=schemas.AssignmentDecision)
def preview(work_order_id: str, session: Session = Depends(get_session)):
    try:
        decision = preview_assignment(session, work_order_id)
    except WorkOrderNotFound:
        raise HTTPException(status_code=404, detail="Work order not found")
    return _decision_out(work_order_id, decision, persisted=False)

@router.post("/{work_order_id}/assign", response_model=schemas.AssignmentDecision)
def assign(work_order_id: str, session: Session = Depends(get_session)):
    # Sin candidato no es error HTTP: technician_id = null
    try:
        decision = assign_work_order(session, work_order_id, _now(), user_id="dispatcher")
    except WorkOrderNotFound:
        raise HTTPException(status_code=404, detail="Work order not found")
    except crud.AssignmentConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _decision_out(work_order_id, decision, persisted=decision.assigned)

@router.get("/{work_order_id}/timeline", response_model=schemas.Timeline)
def timeline(work_order_id: str, current_time: Optional[datetime] = None, session: Session = Depends(get_session)):
    row = _get_or_404(session, work_order_id)
    vehicle = crud.get_vehicle(session, row.vehicle_id)
    vehicles_by_id = {vehicle.id: crud.to_domain_vehicle(vehicle)} if vehicle else None

    tl = build_timeline(crud.to_domain_work_order(row), _now(current_time), vehicles_by_id)
    return schemas.Timeline(
        work_order_id=row.id,
        status=row.status,
        status_history=[schemas.StatusSegment.model_validate(s) for s in tl.status_history],
        total_duration_ms=tl.total_duration_ms,
        current_status_duration_ms=tl.current_status_duration_ms,
        total_duration=format_duration(tl.total_duration_ms),
        current_status_duration=format_duration(tl.current_status_duration_ms),
        vehicle=schemas.Vehicle.model_validate(tl.vehicle) if tl.vehicle else None,
    )

@router.get("/{work_order_id}/sla", response_model=schemas.SLAStatus)
def sla(work_order_id: str, now: Optional[datetime] = None, session: Session = Depends(get_session)):
    row = _get_or_404(session, work_order_id)
    info = get_sla_status(crud.to_domain_work_order(row), _now(now))
    return schemas.SLAStatus(
        work_order_id=row.id,
        status=info.status,
        deadline=info.deadline,
        time_remaining_ms=info.time_remaining_ms,
        time_elapsed_ms=info.time_elapsed_ms,
        total_sla_ms=info.total_sla_ms,
        progress_percent=info.progress_percent,
        formatted_time_remaining=info.formatted_time_remaining,
        sla_target_hours=info.sla_target_hours,
        met_sla=info.met_sla,
    )

@router.post("/{work_order_id}/queue", response_model=schemas.QueueItem, status_code=202)
def enqueue(work_order_id: str, payload: schemas.QueueRequest, session: Session = Depends(get_session)):
    _get_or_404(session, work_order_id)
    return crud.enqueue_work_order(session, work_order_id, priority=payload.priority, max_retries=payload.max_retries)
