from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ..database import get_session
from ..availability import build_availability_map
from ..assignment import get_default_assignment_criteria
from .. import crud, schemas

router = APIRouter(prefix="/technicians", tags=["technicians"])

@router.post("/", response_model=schemas.Technician, status_code=201)
def create_technician(payload: schemas.TechnicianCreate, session: Session = Depends(get_session)):
    return crud.create_technician(session, **payload.model_dump())

@router.get("/", response_model=list[schemas.Technician])
def list_technicians(session: Session = Depends(get_session)):
    return crud.list_technicians(session)

@router.get("/availability", response_model=list[schemas.Availability])
def technician_availability(session: Session = Depends(get_session)):
    # Snapshot derivado en cada llamada; no se guarda
    techs = [crud.to_domain_technician(t) for t in crud.list_technicians(session)]
    orders = [crud.to_domain_work_order(w) for w in crud.list_assigned_work_orders(session)]
    snapshot = build_availability_map(techs, orders, get_default_assignment_criteria())
    return [schemas.Availability.model_validate(snapshot[t.id]) for t in techs]

vehicles_router = APIRouter(prefix="/vehicles", tags=["vehicles"])

@vehicles_router.post("/", response_model=schemas.Vehicle, status_code=201)
def create_vehicle(payload: schemas.VehicleCreate, session: Session = Depends(get_session)):
    return crud.create_vehicle(session, **payload.model_dump())
