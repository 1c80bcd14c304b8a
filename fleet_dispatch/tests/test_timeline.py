# tests/test_timeline.py
from datetime import datetime, timedelta, timezone

from fleet_dispatch.dispatch_models import Vehicle, WorkOrder
from fleet_dispatch.timeline import (
    build_work_order_timelines,
    format_duration,
    parse_status_history,
    summarize_status_durations,
    write_timeline_report,
)

H = 3_600_000  # ms por hora


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def change(old, new, ts):
    return {"activity": f"Status changed from '{old}' to '{new}'.", "timestamp": ts}


def assert_contiguous_and_covering(segments, start, end):
    """Segmentos contiguos, no negativos y que suman exactamente end - start."""
    assert segments[0].start == start
    assert segments[-1].end == end
    for a, b in zip(segments, segments[1:]):
        assert a.end == b.start
    for s in segments:
        assert s.duration_ms >= 0
    assert sum(s.duration_ms for s in segments) == (end - start) // timedelta(milliseconds=1)


def test_example_scenario_two_segments():
    wo = WorkOrder(
        id="WO-1",
        status="In Progress",
        created_at="2024-01-01T00:00:00Z",
        activity_log=[change("New", "In Progress", "2024-01-01T02:00:00Z")],
    )
    segments = parse_status_history(wo, "2024-01-01T05:00:00Z")

    assert [(s.status, s.start, s.end, s.duration_ms) for s in segments] == [
        ("New", utc(2024, 1, 1, 0), utc(2024, 1, 1, 2), 7_200_000),
        ("In Progress", utc(2024, 1, 1, 2), utc(2024, 1, 1, 5), 10_800_000),
    ]


def test_no_status_changes_falls_back_to_current_status():
    wo = WorkOrder(
        id="WO-2",
        status="On Hold",
        created_at=utc(2024, 1, 1),
        activity_log=[{"activity": "Note added: waiting for parts", "timestamp": "2024-01-01T01:00:00Z"}],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 3))

    assert len(segments) == 1
    assert segments[0].status == "On Hold"
    assert segments[0].duration_ms == 3 * H


def test_unsorted_log_is_sorted_before_replay():
    wo = WorkOrder(
        id="WO-3",
        status="Ready",
        created_at=utc(2024, 1, 1),
        activity_log=[
            change("Confirmation", "Ready", "2024-01-01T04:00:00Z"),
            change("Open", "Confirmation", "2024-01-01T01:00:00Z"),
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 10))

    assert [s.status for s in segments] == ["Open", "Confirmation", "Ready"]
    assert [s.duration_ms for s in segments] == [1 * H, 3 * H, 6 * H]


def test_noise_entries_do_not_create_boundaries():
    wo = WorkOrder(
        id="WO-4",
        status="In Progress",
        created_at=utc(2024, 1, 1),
        activity_log=[
            {"activity": "Work order created", "timestamp": "2024-01-01T00:00:00Z"},
            change("Open", "In Progress", "2024-01-01T02:00:00Z"),
            {"activity": "Status changed to something weird", "timestamp": "2024-01-01T03:00:00Z"},
            {"activity": "", "timestamp": "2024-01-01T03:30:00Z"},
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 4))
    assert [s.status for s in segments] == ["Open", "In Progress"]


def test_completed_closes_at_completed_at_not_current_time():
    wo = WorkOrder(
        id="WO-5",
        status="Completed",
        created_at=utc(2024, 1, 1),
        completed_at="2024-01-01T06:00:00Z",
        activity_log=[
            change("Open", "In Progress", "2024-01-01T01:00:00Z"),
            change("In Progress", "Completed", "2024-01-01T06:00:00Z"),
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 3))

    assert [s.status for s in segments] == ["Open", "In Progress", "Completed"]
    assert segments[-1].duration_ms == 0
    assert_contiguous_and_covering(segments, utc(2024, 1, 1), utc(2024, 1, 1, 6))


def test_cancelled_closes_at_current_time():
    wo = WorkOrder(
        id="WO-6",
        status="Cancelled",
        created_at=utc(2024, 1, 1),
        activity_log=[change("Open", "Cancelled", "2024-01-01T02:00:00Z")],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 8))
    assert segments[-1].status == "Cancelled"
    assert segments[-1].duration_ms == 6 * H


def test_created_in_future_is_clamped_to_current_time():
    wo = WorkOrder(id="WO-7", status="Open", created_at=utc(2024, 1, 1, 12))
    segments = parse_status_history(wo, utc(2024, 1, 1, 10))

    assert len(segments) == 1
    assert segments[0].start == utc(2024, 1, 1, 10)
    assert segments[0].end == utc(2024, 1, 1, 10)
    assert segments[0].duration_ms == 0


def test_completed_at_before_last_change_gives_zero_not_negative():
    wo = WorkOrder(
        id="WO-8",
        status="Completed",
        created_at=utc(2024, 1, 1),
        completed_at=utc(2024, 1, 1, 2),
        activity_log=[
            change("Open", "In Progress", "2024-01-01T01:00:00Z"),
            change("In Progress", "Completed", "2024-01-01T03:00:00Z"),
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 2))

    assert [s.duration_ms for s in segments] == [1 * H, 1 * H, 0]
    assert_contiguous_and_covering(segments, utc(2024, 1, 1), utc(2024, 1, 1, 2))


def test_log_entry_before_creation_is_clamped():
    wo = WorkOrder(
        id="WO-9",
        status="In Progress",
        created_at=utc(2024, 1, 1, 5),
        activity_log=[change("Open", "In Progress", "2024-01-01T04:00:00Z")],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 7))

    assert [s.duration_ms for s in segments] == [0, 2 * H]
    assert_contiguous_and_covering(segments, utc(2024, 1, 1, 5), utc(2024, 1, 1, 7))


def test_inconsistent_log_is_trusted_as_written():
    # Dos "from" distintos seguidos: no se reconcilia, se confía en el log
    wo = WorkOrder(
        id="WO-10",
        status="Ready",
        created_at=utc(2024, 1, 1),
        activity_log=[
            change("Open", "Confirmation", "2024-01-01T01:00:00Z"),
            change("On Hold", "Ready", "2024-01-01T02:00:00Z"),
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 3))
    assert [s.status for s in segments] == ["Open", "Confirmation", "Ready"]


def test_structured_entries_are_used_without_text_matching():
    wo = WorkOrder(
        id="WO-11",
        status="In Progress",
        created_at=utc(2024, 1, 1),
        activity_log=[
            {"type": "status_change", "from": "Ready", "to": "In Progress",
             "activity": "moved", "timestamp": "2024-01-01T01:00:00+00:00"},
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 2))
    assert [s.status for s in segments] == ["Ready", "In Progress"]


def test_coverage_property_over_several_orders():
    now = utc(2024, 2, 1)
    orders = [
        WorkOrder(id="a", status="Open", created_at=utc(2024, 1, 30)),
        WorkOrder(id="b", status="On Hold", created_at=utc(2024, 1, 20), activity_log=[
            change("Open", "Confirmation", "2024-01-21T00:00:00Z"),
            change("Confirmation", "Ready", "2024-01-22T00:00:00Z"),
            change("Ready", "In Progress", "2024-01-22T06:30:00Z"),
            change("In Progress", "On Hold", "2024-01-25T00:00:00Z"),
        ]),
        WorkOrder(id="c", status="In Progress", created_at=utc(2024, 1, 31), activity_log=[
            change("Open", "In Progress", "2024-02-05T00:00:00Z"),  # después de now
        ]),
        # microsegundos (timestamptz de Postgres)
        WorkOrder(id="d", status="Ready", created_at=datetime(2024, 1, 31, 23, 0, 0, 400, tzinfo=timezone.utc), activity_log=[
            change("Open", "Confirmation", "2024-01-31T23:10:00.000600Z"),
            change("Confirmation", "Ready", "2024-01-31T23:20:00.001999+00:00"),
        ]),
    ]
    for wo in orders:
        segments = parse_status_history(wo, now)
        created = min(wo.created_at, now)
        assert_contiguous_and_covering(segments, created, now)


def test_sub_millisecond_boundaries_add_up_to_total():
    wo = WorkOrder(
        id="WO-15",
        status="Ready",
        created_at=utc(2024, 1, 1),
        activity_log=[
            change("Open", "Confirmation", "2024-01-01T02:00:00.000600Z"),
            change("Confirmation", "Ready", "2024-01-01T03:00:00.001200Z"),
        ],
    )
    now = datetime(2024, 1, 1, 5, 0, 0, 1200, tzinfo=timezone.utc)
    segments = parse_status_history(wo, now)

    assert sum(s.duration_ms for s in segments) == 18_000_001
    assert [s.duration_ms for s in segments] == [7_200_000, 3_600_001, 7_200_000]
    assert_contiguous_and_covering(segments, utc(2024, 1, 1), now)


def test_entries_without_usable_timestamp_are_ignored():
    wo = WorkOrder(
        id="WO-16",
        status="In Progress",
        created_at=utc(2024, 1, 1),
        activity_log=[
            change("Open", "In Progress", "2024-01-01T02:00:00Z"),
            {"activity": "Note: called customer", "timestamp": "not-a-date"},
            {"activity": "Note without timestamp"},
            {"activity": "Status changed from 'In Progress' to 'On Hold'.", "timestamp": None},
            {"activity": "Status changed from 'In Progress' to 'Completed'.", "timestamp": 12345},
        ],
    )
    segments = parse_status_history(wo, utc(2024, 1, 1, 5))

    assert [(s.status, s.duration_ms) for s in segments] == [("Open", 2 * H), ("In Progress", 3 * H)]


def test_malformed_entry_does_not_break_batch():
    good = WorkOrder(id="ok", status="Open", created_at=utc(2024, 1, 1))
    noisy = WorkOrder(id="noisy", status="Open", created_at=utc(2024, 1, 1),
                      activity_log=[{"activity": "x", "timestamp": "2024-13-45"}, "not a dict"])
    timelines = build_work_order_timelines([good, noisy], current_time=utc(2024, 1, 1, 1))
    assert [t.total_duration_ms for t in timelines] == [H, H]


def test_build_timelines_attaches_vehicle_and_aggregates():
    trucks = [Vehicle(id="V1", name="Truck 1", license_plate="FLT-1"), Vehicle(id="V2", name="Truck 2")]
    wo = WorkOrder(
        id="WO-12",
        status="In Progress",
        created_at="2024-01-01T00:00:00Z",
        vehicle_id="V2",
        activity_log=[change("Open", "In Progress", "2024-01-01T02:00:00Z")],
    )
    orphan = WorkOrder(id="WO-13", status="Open", created_at="2024-01-01T00:00:00Z", vehicle_id="V9")

    timelines = build_work_order_timelines([wo, orphan], trucks, current_time="2024-01-01T05:00:00Z")

    assert timelines[0].vehicle.name == "Truck 2"
    assert timelines[0].total_duration_ms == 5 * H
    assert timelines[0].current_status_duration_ms == 3 * H
    assert timelines[1].vehicle is None
    assert timelines[1].total_duration_ms == 5 * H


def test_build_timelines_is_deterministic_for_fixed_time():
    wo = WorkOrder(id="WO-14", status="Open", created_at=utc(2024, 1, 1))
    a = build_work_order_timelines([wo], current_time=utc(2024, 1, 2))
    b = build_work_order_timelines([wo], current_time=utc(2024, 1, 2))
    assert a == b


def test_format_duration():
    assert format_duration(-1) == ""
    assert format_duration(59_000) == "0m"
    assert format_duration(5 * 60_000) == "5m"
    assert format_duration(2 * H) == "2h"
    assert format_duration(26 * H + 5 * 60_000) == "1d 2h 5m"


def test_summary_and_report(tmp_path):
    orders = [
        WorkOrder(id="a", status="In Progress", created_at=utc(2024, 1, 1), activity_log=[
            change("Open", "In Progress", "2024-01-01T01:00:00Z"),
        ]),
        WorkOrder(id="b", status="In Progress", created_at=utc(2024, 1, 1), activity_log=[
            change("Open", "In Progress", "2024-01-01T03:00:00Z"),
        ]),
    ]
    timelines = build_work_order_timelines(orders, current_time=utc(2024, 1, 1, 4))
    df, meta = summarize_status_durations(timelines)

    rows = {r["status"]: r for r in df.to_dict(orient="records")}
    assert meta["ordenes"] == 2
    assert meta["segmentos"] == 4
    assert meta["horas_totales"] == 8.0
    assert rows["Open"]["segmentos"] == 2
    assert rows["Open"]["horas_totales"] == 4.0
    assert rows["In Progress"]["horas_promedio"] == 2.0
    assert rows["Open"]["participacion_%"] == 50.0

    out = tmp_path / "reports" / "status.txt"
    write_timeline_report(str(out), df, meta, title="Tiempo por estado", generated_at=utc(2024, 1, 1, 4))
    text = out.read_text(encoding="utf-8")
    assert text.splitlines()[:2] == ["Tiempo por estado", "-" * len("Tiempo por estado")]
    assert "Órdenes: 2" in text
    assert "In Progress" in text


def test_summary_of_nothing_writes_empty_report(tmp_path):
    df, meta = summarize_status_durations([])
    assert df.empty
    out = tmp_path / "empty.txt"
    write_timeline_report(str(out), df, meta, title="Vacío")
    assert "No hubo segmentos para mostrar." in out.read_text(encoding="utf-8")
