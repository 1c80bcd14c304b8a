# fleet_dispatch/timeline.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .activity import StatusChange, parse_activity_entry, parse_timestamp
from .dispatch_models import (
    STATUS_COMPLETED,
    StatusSegment,
    TimelineWorkOrder,
    Vehicle,
    WorkOrder,
)

_ONE_MS = timedelta(milliseconds=1)


def _offset_ms(origin: datetime, value: datetime) -> int:
    return (value - origin) // _ONE_MS


def _clamp(value: datetime, lower: datetime, upper: datetime) -> datetime:
    return min(max(value, lower), upper)


def _closing_time(work_order: WorkOrder, current_time: datetime) -> datetime:
    if work_order.status == STATUS_COMPLETED and work_order.completed_at:
        return parse_timestamp(work_order.completed_at)
    return current_time


# --------------------------
# Reconstrucción
# --------------------------


def parse_status_history(work_order: WorkOrder, current_time: datetime | str) -> List[StatusSegment]:
    """
    Reconstruye los segmentos de estado de una orden a partir de su activity_log.

    - created_at posterior a current_time (desfase de reloj) se recorta a current_time.
    - El log se ordena por timestamp (orden estable).
    - Estado inicial = "from" del primer cambio de estado; si no hay cambios,
      el estado actual de la orden.
    - Cada cambio cierra el segmento abierto y abre uno nuevo con el "to".
    - El último segmento cierra en completed_at (Completed) o en current_time.
    - Ningún límite retrocede: duraciones negativas quedan en cero.
    - Entradas sin timestamp válido se ignoran.

    Las duraciones salen de offsets en ms desde created (truncados), así la
    suma es exactamente (cierre - created) // 1ms aun con microsegundos.
    """
    now = parse_timestamp(current_time)
    created = min(parse_timestamp(work_order.created_at), now)
    closing = max(_closing_time(work_order, now), created)

    parsed = (parse_activity_entry(raw) for raw in (work_order.activity_log or []))
    entries = sorted((e for e in parsed if e is not None), key=lambda e: e.timestamp)
    changes = [e for e in entries if isinstance(e, StatusChange)]

    status = changes[0].from_status if changes else work_order.status
    seg_start = created
    segments: List[StatusSegment] = []

    for change in changes:
        boundary = _clamp(change.timestamp, seg_start, closing)
        duration = _offset_ms(created, boundary) - _offset_ms(created, seg_start)
        segments.append(StatusSegment(status, seg_start, boundary, duration))
        status = change.to_status
        seg_start = boundary

    end = max(closing, seg_start)
    duration = _offset_ms(created, end) - _offset_ms(created, seg_start)
    segments.append(StatusSegment(status, seg_start, end, duration))
    return segments


def build_timeline(
    work_order: WorkOrder,
    current_time: datetime | str,
    vehicles_by_id: Optional[Dict[str, Vehicle]] = None,
) -> TimelineWorkOrder:
    history = parse_status_history(work_order, current_time)
    vehicle = None
    if vehicles_by_id and work_order.vehicle_id:
        vehicle = vehicles_by_id.get(work_order.vehicle_id)
    return TimelineWorkOrder(
        work_order=work_order,
        status_history=history,
        total_duration_ms=sum(s.duration_ms for s in history),
        current_status_duration_ms=history[-1].duration_ms if history else 0,
        vehicle=vehicle,
    )


def build_work_order_timelines(
    work_orders: Iterable[WorkOrder],
    vehicles: Optional[Iterable[Vehicle]] = None,
    current_time: Optional[datetime | str] = None,
) -> List[TimelineWorkOrder]:
    """
    Enriquece cada orden con su historial de estados y el vehículo asociado.

    Pasar `current_time` explícito deja el resultado determinista; si se omite
    se toma la hora actual una sola vez para todo el lote.
    """
    if current_time is None:
        current_time = datetime.now(timezone.utc)
    vehicles_by_id = {v.id: v for v in (vehicles or [])}
    return [build_timeline(wo, current_time, vehicles_by_id) for wo in work_orders]


# --------------------------
# Formato y reporte
# --------------------------


def format_duration(ms: int) -> str:
    """'1d 2h 5m'; menos de un minuto -> '0m'; negativo -> ''."""
    if ms < 0:
        return ""
    total_seconds = ms // 1000
    if total_seconds < 60:
        return "0m"

    days = total_seconds // 86400
    hours = (total_seconds % 86400) // 3600
    minutes = (total_seconds % 3600) // 60

    parts: list[str] = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    return " ".join(parts)


def summarize_status_durations(timelines: Iterable[TimelineWorkOrder]) -> tuple[pd.DataFrame, dict]:
    """
    Agrega el tiempo pasado en cada estado sobre un lote de órdenes.

    Devuelve (df, meta) con columnas: status, segmentos, horas_totales,
    horas_promedio, participacion_%.
    """
    rows = []
    orders = 0
    for tl in timelines:
        orders += 1
        for seg in tl.status_history:
            rows.append({"status": seg.status, "duration_ms": seg.duration_ms})

    meta = {"ordenes": orders, "segmentos": len(rows)}
    cols = ["status", "segmentos", "horas_totales", "horas_promedio", "participacion_%"]
    if not rows:
        meta["horas_totales"] = 0.0
        return pd.DataFrame(columns=cols), meta

    df = pd.DataFrame(rows)
    df["hours"] = df["duration_ms"] / 3_600_000

    grouped = (
        df.groupby("status", sort=False)["hours"]
        .agg(segmentos="count", horas_totales="sum", horas_promedio="mean")
        .reset_index()
    )
    total_hours = float(df["hours"].sum())
    grouped["participacion_%"] = (
        (grouped["horas_totales"] / total_hours * 100).round(2) if total_hours else 0.0
    )
    grouped["horas_totales"] = grouped["horas_totales"].round(3)
    grouped["horas_promedio"] = grouped["horas_promedio"].round(3)
    grouped = (
        grouped.sort_values(by=["horas_totales", "status"], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )

    meta["horas_totales"] = round(total_hours, 3)
    return grouped[cols], meta


def write_timeline_report(
    txt_path: str,
    df_result: pd.DataFrame,
    meta: dict,
    title: str,
    generated_at: Optional[datetime] = None,
) -> None:
    """Genera un reporte de texto alineado con el tiempo por estado."""
    Path(txt_path).parent.mkdir(parents=True, exist_ok=True)

    lines: list[str] = [title, "-" * len(title)]
    ts = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines.append(f"Generado: {ts}")
    lines.append("")
    lines.append(f"Órdenes: {meta.get('ordenes', 0)}")
    lines.append(f"Segmentos: {meta.get('segmentos', 0)}")
    lines.append(f"Horas totales: {float(meta.get('horas_totales', 0) or 0):.3f}")
    lines.append("")

    if df_result is None or df_result.empty:
        lines.append("No hubo segmentos para mostrar.")
        Path(txt_path).write_text("\n".join(lines), encoding="utf-8")
        return

    cols = ["status", "segmentos", "horas_totales", "horas_promedio", "participacion_%"]
    df_print = df_result.copy()
    df_print["horas_totales"] = df_print["horas_totales"].map(lambda x: f"{float(x):.3f}")
    df_print["horas_promedio"] = df_print["horas_promedio"].map(lambda x: f"{float(x):.3f}")
    df_print["participacion_%"] = df_print["participacion_%"].map(lambda x: f"{float(x):.2f}")

    widths: dict[str, int] = {
        c: max(len(c), int(df_print[c].astype(str).map(len).max()))
        for c in cols
    }

    def align(val, col):
        s = str(val)
        return s.ljust(widths[col]) if col == "status" else s.rjust(widths[col])

    lines.append("  ".join(align(c, c) for c in cols))
    lines.append("  ".join("-" * widths[c] for c in cols))
    for _, row in df_print.iterrows():
        lines.append("  ".join(align(row[c], c) for c in cols))

    Path(txt_path).write_text("\n".join(lines), encoding="utf-8")
