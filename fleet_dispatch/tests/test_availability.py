# tests/test_availability.py
from datetime import datetime, timezone

from fleet_dispatch.availability import build_availability_map
from fleet_dispatch.dispatch_models import AssignmentCriteria, Technician, WorkOrder


def wo(i, status, tech):
    return WorkOrder(
        id=f"WO-{i}",
        status=status,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        assigned_technician_id=tech,
    )


def test_counts_active_and_completion_rate():
    techs = [
        Technician(id="T1", name="Ana", location_id="L1", max_concurrent_orders=3),
        Technician(id="T2", name="Luis", location_id="L1", status="busy"),
        Technician(id="T3", name="Eva", location_id="L2", status="offline"),
    ]
    orders = [
        wo(1, "In Progress", "T1"),
        wo(2, "On Hold", "T1"),
        wo(3, "Completed", "T1"),
        wo(4, "Cancelled", "T1"),
        wo(5, "Completed", "T2"),
        wo(6, "Open", None),
    ]
    out = build_availability_map(techs, orders)

    t1 = out["T1"]
    assert t1.is_available is True
    assert t1.active_work_orders_count == 2
    assert t1.max_concurrent_orders == 3
    # 1 completada de 3 asignadas (la cancelada no cuenta)
    assert t1.completion_rate == 33.33

    t2 = out["T2"]
    assert t2.is_available is False
    assert t2.on_shift is True
    assert t2.active_work_orders_count == 0
    assert t2.completion_rate == 100.0
    assert t2.max_concurrent_orders == 5

    t3 = out["T3"]
    assert t3.on_shift is False
    assert t3.completion_rate == 0.0


def test_criteria_default_capacity_is_used_when_technician_has_none():
    techs = [Technician(id="T1", name="Ana", location_id="L1")]
    out = build_availability_map(techs, [], AssignmentCriteria(max_concurrent_orders=2))
    assert out["T1"].max_concurrent_orders == 2
    assert out["T1"].active_work_orders_count == 0


def test_orders_for_unknown_technicians_are_ignored():
    out = build_availability_map([], [wo(1, "In Progress", "T9")])
    assert out == {}
