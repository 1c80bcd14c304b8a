# fleet_dispatch/sla.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from .activity import parse_timestamp
from .dispatch_models import STATUS_COMPLETED, SLAInfo, WorkOrder

# {service_category_id: {"high": h, "medium": h, "low": h}}
SLAConfig = Dict[str, Dict[str, float]]

AT_RISK_PERCENT = 75.0
AT_RISK_HOURS = 4.0

_ONE_MS = timedelta(milliseconds=1)


def get_sla_hours(
    sla_config: Optional[SLAConfig],
    service_category_id: Optional[str],
    priority: Optional[str],
) -> Optional[float]:
    if not sla_config or not service_category_id:
        return None
    category = sla_config.get(service_category_id)
    if not category:
        return None
    return category.get((priority or "medium").lower()) or None


def calculate_sla_deadline(created_at: datetime | str, sla_hours: Optional[float]) -> Optional[datetime]:
    if not sla_hours or sla_hours <= 0:
        return None
    return parse_timestamp(created_at) + timedelta(hours=sla_hours)


def format_time_remaining(ms: int) -> str:
    """'2d 3h left', '4h 10m left', 'Overdue by 45m'."""
    negative = ms < 0
    abs_ms = abs(ms)

    days = abs_ms // 86_400_000
    hours = (abs_ms % 86_400_000) // 3_600_000
    minutes = (abs_ms % 3_600_000) // 60_000

    if days > 0:
        text = f"{days}d {hours}h"
    elif hours > 0:
        text = f"{hours}h {minutes}m"
    else:
        text = f"{minutes}m"
    return f"Overdue by {text}" if negative else f"{text} left"


def _resolve_deadline(
    work_order: WorkOrder,
    sla_config: Optional[SLAConfig],
) -> tuple[Optional[datetime], Optional[float]]:
    """sla_due manda; si no hay, created_at + horas configuradas."""
    hours = get_sla_hours(sla_config, work_order.service_category_id, work_order.priority)
    if work_order.sla_due:
        return parse_timestamp(work_order.sla_due), hours
    return calculate_sla_deadline(work_order.created_at, hours), hours


def get_sla_status(
    work_order: WorkOrder,
    now: datetime | str,
    sla_config: Optional[SLAConfig] = None,
) -> SLAInfo:
    """
    Estado del SLA de una orden en el instante `now`.

    - Completed -> 'completed' (met_sla indica si cerró antes del deadline).
    - Sin deadline -> 'no-sla'.
    - Vencida -> 'overdue'; ≥75% consumido o <4h restantes -> 'at-risk'.
    """
    now = parse_timestamp(now)
    deadline, hours = _resolve_deadline(work_order, sla_config)

    if work_order.status == STATUS_COMPLETED:
        met = None
        if deadline and work_order.completed_at:
            met = parse_timestamp(work_order.completed_at) <= deadline
        return SLAInfo(status="completed", deadline=deadline, sla_target_hours=hours, met_sla=met)

    if deadline is None:
        return SLAInfo(status="no-sla")

    created = parse_timestamp(work_order.created_at)
    total = (deadline - created) // _ONE_MS
    elapsed = (now - created) // _ONE_MS
    remaining = (deadline - now) // _ONE_MS
    progress = (elapsed / total * 100) if total > 0 else 100.0

    if remaining < 0:
        status = "overdue"
    elif progress >= AT_RISK_PERCENT or remaining < AT_RISK_HOURS * 3_600_000:
        status = "at-risk"
    else:
        status = "on-track"

    return SLAInfo(
        status=status,
        deadline=deadline,
        time_remaining_ms=remaining,
        time_elapsed_ms=elapsed,
        total_sla_ms=total,
        progress_percent=progress,
        formatted_time_remaining=format_time_remaining(remaining),
        sla_target_hours=hours if hours is not None else round(total / 3_600_000, 3),
    )


def calculate_sla_compliance(
    work_orders: Iterable[WorkOrder],
    sla_config: Optional[SLAConfig] = None,
) -> dict:
    """
    % de órdenes completadas dentro del SLA.

    Solo cuenta órdenes completadas; las que no tienen deadline o completed_at
    cuentan como fuera del SLA (no se pueden acreditar).
    """
    completed = [wo for wo in work_orders if wo.status == STATUS_COMPLETED]
    if not completed:
        return {
            "compliance_percent": 100.0,
            "total_completed": 0,
            "completed_within_sla": 0,
            "completed_outside_sla": 0,
        }

    within = 0
    for wo in completed:
        deadline, _ = _resolve_deadline(wo, sla_config)
        if deadline is None or not wo.completed_at:
            continue
        if parse_timestamp(wo.completed_at) <= deadline:
            within += 1

    return {
        "compliance_percent": within / len(completed) * 100,
        "total_completed": len(completed),
        "completed_within_sla": within,
        "completed_outside_sla": len(completed) - within,
    }
