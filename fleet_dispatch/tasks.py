# fleet_dispatch/tasks.py
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from celery.utils.log import get_task_logger
from .celery_app import celery_app
from .database import session_scope
from . import crud
from .dispatch_service import process_assignment_queue as run_assignment_queue
from .timeline import build_work_order_timelines, summarize_status_durations, write_timeline_report

logger = get_task_logger(__name__)
logging.basicConfig(level=logging.INFO)

AUTO_ASSIGNMENT_ENABLED = os.getenv("AUTO_ASSIGNMENT_ENABLED", "true").lower() in ("1", "true", "yes")
MAX_AUTO_ASSIGNMENTS_PER_RUN = int(os.getenv("MAX_AUTO_ASSIGNMENTS_PER_RUN", "50"))
ASSIGNMENT_RETRY_DELAY_MINUTES = int(os.getenv("ASSIGNMENT_RETRY_DELAY_MINUTES", "15"))
# Directorio donde guardaremos los reportes .txt
REPORTS_DIR = os.getenv("REPORTS_DIR", str(Path(__file__).resolve().parent / "reports"))


@celery_app.task(name="fleet_dispatch.tasks.process_assignment_queue")
def process_assignment_queue() -> dict:
    """Asigna las órdenes pendientes de la cola (si la automatización está activa)."""
    if not AUTO_ASSIGNMENT_ENABLED:
        logger.info("[process_assignment_queue] Auto-assignment disabled")
        return {"processed": 0, "assigned": [], "retried": [], "failed": []}

    now = datetime.now(timezone.utc)
    with session_scope() as session:
        out = run_assignment_queue(
            session,
            now,
            max_per_run=MAX_AUTO_ASSIGNMENTS_PER_RUN,
            retry_delay_minutes=ASSIGNMENT_RETRY_DELAY_MINUTES,
        )
    logger.info("[process_assignment_queue] processed=%s assigned=%s retried=%s failed=%s",
                out["processed"], len(out["assigned"]), len(out["retried"]), len(out["failed"]))
    return out


@celery_app.task(name="fleet_dispatch.tasks.write_status_duration_report")
def write_status_duration_report(reports_dir: str | None = None) -> str:
    """Escribe el reporte de tiempo por estado de todas las órdenes."""
    now = datetime.now(timezone.utc)
    out_dir = Path(reports_dir or REPORTS_DIR)

    with session_scope() as session:
        orders = [crud.to_domain_work_order(w) for w in crud.list_work_orders(session)]

    timelines = build_work_order_timelines(orders, current_time=now)
    df_res, meta = summarize_status_durations(timelines)

    txt = out_dir / f"status_durations_{now:%Y%m%d_%H%M}.txt"
    write_timeline_report(str(txt), df_res, meta, title=f"Tiempo por estado ({now:%Y-%m-%d %H:%M} UTC)")
    logger.info("[write_status_duration_report] OK | ordenes=%s | out=%s", meta["ordenes"], txt)
    return str(txt)
