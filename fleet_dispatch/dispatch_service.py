# fleet_dispatch/dispatch_service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import crud
from .activity import status_change_entry
from .assignment import find_best_technician, get_default_assignment_criteria
from .availability import build_availability_map
from .dispatch_models import (
    STATUS_IN_PROGRESS,
    TERMINAL_STATUSES,
    AssignmentContext,
    AssignmentCriteria,
    AssignmentDecision,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_RUN = 50
DEFAULT_RETRY_DELAY_MINUTES = 15
AUTOMATION_USER = "auto-assignment"


class WorkOrderNotFound(LookupError):
    pass


def build_assignment_context(
    db: Session,
    work_order_id: str,
    criteria: Optional[AssignmentCriteria] = None,
) -> AssignmentContext:
    """Lee orden, técnicos y órdenes asignadas y arma el contexto del motor."""
    row = crud.get_work_order(db, work_order_id)
    if row is None:
        raise WorkOrderNotFound(work_order_id)

    criteria = criteria or get_default_assignment_criteria()
    technicians = [crud.to_domain_technician(t) for t in crud.list_technicians(db)]
    assigned = [crud.to_domain_work_order(w) for w in crud.list_assigned_work_orders(db)]

    return AssignmentContext(
        work_order=crud.to_domain_work_order(row),
        available_technicians=technicians,
        technician_availability=build_availability_map(technicians, assigned, criteria),
        criteria=criteria,
    )


def preview_assignment(
    db: Session,
    work_order_id: str,
    criteria: Optional[AssignmentCriteria] = None,
) -> AssignmentDecision:
    return find_best_technician(build_assignment_context(db, work_order_id, criteria))


def assign_work_order(
    db: Session,
    work_order_id: str,
    now: datetime,
    criteria: Optional[AssignmentCriteria] = None,
    user_id: str = AUTOMATION_USER,
) -> AssignmentDecision:
    """
    Ciclo leer -> decidir -> escribir para una orden.

    - Sin candidato: devuelve la decisión vacía, no escribe nada.
    - Con candidato: escribe la asignación con compare-and-swap; la orden pasa
      a In Progress con su entrada en el activity_log.
    Lanza crud.AssignmentConflict si otra escritura ganó la carrera.
    """
    context = build_assignment_context(db, work_order_id, criteria)
    wo = context.work_order

    if wo.assigned_technician_id:
        raise crud.AssignmentConflict(f"Work order {wo.id} is already assigned")
    if wo.status in TERMINAL_STATUSES:
        raise crud.AssignmentConflict(f"Work order {wo.id} is {wo.status}")

    decision = find_best_technician(context)
    if not decision.assigned:
        logger.info("Work order %s left unassigned: %s", wo.id, decision.decision_factors.get("reason"))
        return decision

    log = list(wo.activity_log)
    if wo.status != STATUS_IN_PROGRESS:
        log.append(status_change_entry(wo.status, STATUS_IN_PROGRESS, now, user_id,
                                       note=f"Assigned to {decision.technician_name}."))

    avail = context.technician_availability[decision.technician_id]
    crud.persist_assignment(
        db,
        work_order_id=wo.id,
        technician_id=decision.technician_id,
        max_concurrent_orders=avail.max_concurrent_orders,
        status=STATUS_IN_PROGRESS,
        activity_log=log,
    )
    logger.info("Work order %s assigned to %s (score=%.1f)", wo.id, decision.technician_id, decision.score)
    return decision


def process_assignment_queue(
    db: Session,
    now: datetime,
    max_per_run: int = DEFAULT_MAX_PER_RUN,
    retry_delay_minutes: int = DEFAULT_RETRY_DELAY_MINUTES,
    criteria: Optional[AssignmentCriteria] = None,
) -> dict:
    """
    Procesa la cola de asignación (pendientes vencidas, por prioridad y antigüedad).

    - Asignada -> item 'assigned'.
    - Sin técnico o conflicto -> retry_count + 1; al llegar a max_retries queda
      'failed', si no se reprograma a now + retry_delay.
    - Orden ya asignada/cerrada por fuera -> item 'assigned'/'failed' sin reintento.

    Cada intento corre en su propio SAVEPOINT: si falla, solo se deshace ese
    intento y la transacción sigue sirviendo para el resto de la cola.
    """
    items = crud.list_due_queue_items(db, now, max_per_run)
    out = {"processed": 0, "assigned": [], "retried": [], "failed": []}

    for item in items:
        out["processed"] += 1
        try:
            with db.begin_nested():
                decision = assign_work_order(db, item.work_order_id, now, criteria)
        except WorkOrderNotFound:
            item.status = "failed"
            item.failed_reason = "Work order not found"
            out["failed"].append(item.work_order_id)
            continue
        except crud.AssignmentConflict as e:
            row = crud.get_work_order(db, item.work_order_id)
            if row is not None and row.assigned_technician_id:
                item.status = "assigned"
                item.assigned_at = now
                out["assigned"].append(item.work_order_id)
                continue
            if row is not None and row.status in TERMINAL_STATUSES:
                item.status = "failed"
                item.failed_reason = f"Work order is {row.status}"
                out["failed"].append(item.work_order_id)
                continue
            logger.warning("Assignment conflict for %s: %s", item.work_order_id, e)
            decision = None
        except Exception:
            logger.exception("Error assigning work order %s", item.work_order_id)
            decision = None

        if decision is not None and decision.assigned:
            item.status = "assigned"
            item.assigned_at = now
            out["assigned"].append(item.work_order_id)
            continue

        item.retry_count += 1
        if item.retry_count >= item.max_retries:
            item.status = "failed"
            item.failed_reason = "No suitable technician found after max retries"
            out["failed"].append(item.work_order_id)
        else:
            item.next_retry_at = now + timedelta(minutes=retry_delay_minutes)
            out["retried"].append(item.work_order_id)

    db.flush()
    if not items:
        logger.info("Assignment queue empty")
    else:
        logger.info("Assignment queue run: %d processed, %d assigned, %d retried, %d failed",
                    out["processed"], len(out["assigned"]), len(out["retried"]), len(out["failed"]))
    return out
