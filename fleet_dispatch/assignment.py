# fleet_dispatch/assignment.py
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from .dispatch_models import (
    AssignmentCandidate,
    AssignmentContext,
    AssignmentCriteria,
    AssignmentDecision,
    Technician,
    TechnicianAvailability,
    WorkOrder,
)

logger = logging.getLogger(__name__)

NO_CANDIDATES_REASON = "No available technicians at this location"

Scorer = Callable[[Technician, TechnicianAvailability], float]
RankKey = Callable[[AssignmentCandidate], float]


def get_default_assignment_criteria() -> AssignmentCriteria:
    """Criterios por defecto (match_specialization existe pero no se usa)."""
    return AssignmentCriteria(
        match_location=True,
        match_specialization=False,
        consider_workload=True,
        prefer_same_location=True,
        max_concurrent_orders=5,
    )


# --------------------------
# Filtro y puntaje
# --------------------------


def is_eligible(
    technician: Technician,
    work_order: WorkOrder,
    availability: Dict[str, TechnicianAvailability],
) -> bool:
    """
    Un técnico es elegible si:
    - tiene snapshot de disponibilidad,
    - está disponible,
    - tiene capacidad (activos < máximo, igual cuenta como lleno),
    - su location_id coincide exactamente con la de la orden.
    """
    avail = availability.get(technician.id)
    if avail is None:
        return False
    if not avail.is_available:
        return False
    if avail.active_work_orders_count >= avail.max_concurrent_orders:
        return False
    return technician.location_id == work_order.location_id


def workload_score(technician: Technician, availability: TechnicianAvailability) -> float:
    """100 - utilización (%). Más alto = más capacidad libre."""
    utilization = availability.active_work_orders_count / availability.max_concurrent_orders * 100
    return max(0.0, 100.0 - utilization)


def _by_current_workload(candidate: AssignmentCandidate) -> float:
    return candidate.current_workload


def _build_candidate(
    technician: Technician,
    availability: TechnicianAvailability,
    scorer: Scorer,
) -> AssignmentCandidate:
    spare = workload_score(technician, availability)
    return AssignmentCandidate(
        technician_id=technician.id,
        technician_name=technician.name,
        current_workload=availability.active_work_orders_count,
        max_concurrent_orders=availability.max_concurrent_orders,
        availability_score=spare,
        performance_score=availability.completion_rate,
        total_score=scorer(technician, availability),
        on_shift=availability.on_shift,
    )


# --------------------------
# API principal
# --------------------------


def find_best_technician(
    context: AssignmentContext,
    scorer: Optional[Scorer] = None,
    rank_key: Optional[RankKey] = None,
) -> AssignmentDecision:
    """
    Elige el mejor técnico para la orden en una sola pasada:

    1. Filtra elegibles (ubicación + disponibilidad + capacidad).
    2. Sin elegibles -> decisión vacía (no es error, no se reintenta aquí).
    3. Puntúa cada elegible (por defecto: capacidad libre).
    4. Ordena estable por carga actual (empates conservan el orden de entrada).
    5. El primero es la decisión.

    `scorer` y `rank_key` permiten enchufar otros criterios (especialización,
    desempeño) sin tocar el algoritmo; los defaults reproducen el
    comportamiento actual.
    """
    scorer = scorer or workload_score
    rank_key = rank_key or _by_current_workload

    work_order = context.work_order
    availability = context.technician_availability

    eligible: List[Technician] = [
        t for t in context.available_technicians
        if is_eligible(t, work_order, availability)
    ]

    if not eligible:
        logger.debug("Work order %s: no eligible technicians at location %s",
                     work_order.id, work_order.location_id)
        return AssignmentDecision(
            technician_id=None,
            technician_name=None,
            score=0,
            decision_factors={
                "reason": NO_CANDIDATES_REASON,
                "location_match": False,
                "alternatives_considered": len(context.available_technicians),
            },
            candidates=[],
        )

    candidates = [_build_candidate(t, availability[t.id], scorer) for t in eligible]
    # sorted() es estable: empates quedan en el orden de entrada
    candidates = sorted(candidates, key=rank_key)

    best = candidates[0]
    reason = (
        f"Lowest workload at location: {best.current_workload} of "
        f"{best.max_concurrent_orders} active orders"
    )
    logger.debug("Work order %s -> technician %s (%s)", work_order.id, best.technician_id, reason)

    return AssignmentDecision(
        technician_id=best.technician_id,
        technician_name=best.technician_name,
        score=best.total_score,
        decision_factors={
            "location_match": True,
            "current_workload": best.current_workload,
            "availability_score": best.availability_score,
            "final_score": best.total_score,
            "reason": reason,
            "alternatives_considered": len(candidates),
        },
        candidates=candidates,
    )
