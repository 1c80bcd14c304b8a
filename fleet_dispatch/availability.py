# fleet_dispatch/availability.py
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, Optional

from .dispatch_models import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    TERMINAL_STATUSES,
    AssignmentCriteria,
    Technician,
    TechnicianAvailability,
    WorkOrder,
)


def build_availability_map(
    technicians: Iterable[Technician],
    work_orders: Iterable[WorkOrder],
    criteria: Optional[AssignmentCriteria] = None,
) -> Dict[str, TechnicianAvailability]:
    """
    Calcula el snapshot de disponibilidad por técnico.

    - activos: órdenes asignadas que no están en estado terminal.
    - completion_rate: completadas / asignadas (sin canceladas) * 100.
    - max_concurrent_orders: el del técnico, o el default de los criterios.
    """
    fallback_max = (criteria or AssignmentCriteria()).max_concurrent_orders

    active: Dict[str, int] = defaultdict(int)
    assigned: Dict[str, int] = defaultdict(int)
    completed: Dict[str, int] = defaultdict(int)

    for wo in work_orders:
        tech_id = wo.assigned_technician_id
        if not tech_id:
            continue
        if wo.status not in TERMINAL_STATUSES:
            active[tech_id] += 1
        if wo.status != STATUS_CANCELLED:
            assigned[tech_id] += 1
        if wo.status == STATUS_COMPLETED:
            completed[tech_id] += 1

    out: Dict[str, TechnicianAvailability] = {}
    for tech in technicians:
        total = assigned.get(tech.id, 0)
        rate = round(completed.get(tech.id, 0) / total * 100, 2) if total else 0.0
        max_orders = tech.max_concurrent_orders if tech.max_concurrent_orders is not None else fallback_max
        out[tech.id] = TechnicianAvailability(
            technician_id=tech.id,
            is_available=tech.status == "available",
            active_work_orders_count=active.get(tech.id, 0),
            max_concurrent_orders=max_orders,
            on_shift=tech.status != "offline",
            completion_rate=rate,
        )
    return out
