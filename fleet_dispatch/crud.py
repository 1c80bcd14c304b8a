# fleet_dispatch/crud.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from . import models
from .dispatch_models import (
    TERMINAL_STATUSES,
    Technician,
    Vehicle,
    WorkOrder,
)


class AssignmentConflict(Exception):
    """La orden ya no está libre o el técnico ya no tiene capacidad."""


# -------------------------
# ORM -> dominio
# -------------------------
def to_domain_work_order(row: models.WorkOrder) -> WorkOrder:
    return WorkOrder(
        id=row.id,
        status=row.status,
        created_at=row.created_at,
        location_id=row.location_id,
        priority=row.priority,
        assigned_technician_id=row.assigned_technician_id,
        vehicle_id=row.vehicle_id,
        service_category_id=row.service_category_id,
        sla_due=row.sla_due,
        completed_at=row.completed_at,
        activity_log=list(row.activity_log or []),
    )


def to_domain_technician(row: models.Technician) -> Technician:
    return Technician(
        id=row.id,
        name=row.name,
        location_id=row.location_id,
        specializations=list(row.specializations or []),
        status=row.status,
        max_concurrent_orders=row.max_concurrent_orders,
    )


def to_domain_vehicle(row: models.Vehicle) -> Vehicle:
    return Vehicle(id=row.id, name=row.name, license_plate=row.license_plate)


# -------------------------
# Lecturas
# -------------------------
def get_work_order(db: Session, work_order_id: str) -> Optional[models.WorkOrder]:
    return db.get(models.WorkOrder, work_order_id)


def get_vehicle(db: Session, vehicle_id: Optional[str]) -> Optional[models.Vehicle]:
    if not vehicle_id:
        return None
    return db.get(models.Vehicle, vehicle_id)


def list_technicians(db: Session) -> List[models.Technician]:
    return list(db.scalars(select(models.Technician).order_by(models.Technician.name, models.Technician.id)))


def list_work_orders(db: Session, status: Optional[str] = None) -> List[models.WorkOrder]:
    stmt = select(models.WorkOrder).order_by(models.WorkOrder.created_at, models.WorkOrder.id)
    if status:
        stmt = stmt.where(models.WorkOrder.status == status)
    return list(db.scalars(stmt))


def list_assigned_work_orders(db: Session) -> List[models.WorkOrder]:
    """Órdenes con técnico (base para el snapshot de disponibilidad)."""
    stmt = select(models.WorkOrder).where(models.WorkOrder.assigned_technician_id.is_not(None))
    return list(db.scalars(stmt))


def count_active_orders(db: Session, technician_id: str) -> int:
    stmt = (
        select(func.count(models.WorkOrder.id))
        .where(models.WorkOrder.assigned_technician_id == technician_id)
        .where(models.WorkOrder.status.not_in(sorted(TERMINAL_STATUSES)))
    )
    return int(db.scalar(stmt) or 0)


def list_due_queue_items(db: Session, now: datetime, limit: int) -> List[models.AssignmentQueueItem]:
    stmt = (
        select(models.AssignmentQueueItem)
        .where(models.AssignmentQueueItem.status == "pending")
        .where(
            (models.AssignmentQueueItem.next_retry_at.is_(None))
            | (models.AssignmentQueueItem.next_retry_at <= now)
        )
        .order_by(models.AssignmentQueueItem.priority.desc(), models.AssignmentQueueItem.added_at)
        .limit(limit)
    )
    return list(db.scalars(stmt))


# -------------------------
# Escrituras
# -------------------------
def create_technician(db: Session, **fields) -> models.Technician:
    tech = models.Technician(**fields)
    db.add(tech)
    db.flush()
    return tech


def create_vehicle(db: Session, **fields) -> models.Vehicle:
    vehicle = models.Vehicle(**fields)
    db.add(vehicle)
    db.flush()
    return vehicle


def create_work_order(db: Session, **fields) -> models.WorkOrder:
    if fields.get("created_at") is None:
        fields.pop("created_at", None)
    wo = models.WorkOrder(**fields)
    db.add(wo)
    db.flush()
    return wo


def save_domain_work_order(db: Session, row: models.WorkOrder, wo: WorkOrder) -> models.WorkOrder:
    """Copia estado, log y completed_at de la orden de dominio a la fila."""
    row.status = wo.status
    row.completed_at = wo.completed_at
    row.activity_log = list(wo.activity_log)
    db.flush()
    return row


def enqueue_work_order(db: Session, work_order_id: str, priority: int = 0, max_retries: int = 3) -> models.AssignmentQueueItem:
    item = db.scalar(
        select(models.AssignmentQueueItem).where(models.AssignmentQueueItem.work_order_id == work_order_id)
    )
    if item is None:
        item = models.AssignmentQueueItem(work_order_id=work_order_id)
        db.add(item)
    item.priority = priority
    item.max_retries = max_retries
    item.status = "pending"
    item.retry_count = 0
    item.next_retry_at = None
    item.failed_reason = None
    db.flush()
    return item


def persist_assignment(
    db: Session,
    work_order_id: str,
    technician_id: str,
    max_concurrent_orders: int,
    status: str,
    activity_log: list,
) -> None:
    """
    Escribe la asignación como compare-and-swap dentro de la transacción actual.

    - Bloquea la fila del técnico (FOR UPDATE donde el motor lo soporte).
    - Revalida la capacidad con el conteo real de órdenes activas.
    - Solo actualiza si la orden sigue sin técnico.
    Si algo no se cumple lanza AssignmentConflict y no escribe nada.
    """
    db.execute(
        select(models.Technician.id)
        .where(models.Technician.id == technician_id)
        .with_for_update()
    )

    active = count_active_orders(db, technician_id)
    if active >= max_concurrent_orders:
        raise AssignmentConflict(
            f"Technician {technician_id} is at capacity ({active}/{max_concurrent_orders})"
        )

    result = db.execute(
        update(models.WorkOrder)
        .where(models.WorkOrder.id == work_order_id)
        .where(models.WorkOrder.assigned_technician_id.is_(None))
        .values(
            assigned_technician_id=technician_id,
            status=status,
            activity_log=activity_log,
        )
    )
    if result.rowcount != 1:
        raise AssignmentConflict(f"Work order {work_order_id} is already assigned")
