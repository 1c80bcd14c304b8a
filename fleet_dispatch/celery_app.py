import os
from celery import Celery
from celery.schedules import crontab

# Broker y backend (Redis)
REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
BROKER_URL = os.getenv("CELERY_BROKER_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")

AUTO_ASSIGN_INTERVAL_SECONDS = float(os.getenv("AUTO_ASSIGN_INTERVAL_SECONDS", "60"))

celery_app = Celery("dispatch_tasks", broker=BROKER_URL, backend=RESULT_BACKEND, include=["fleet_dispatch.tasks"])

celery_app.conf.beat_schedule = {
    "process-assignment-queue": {
        "task": "fleet_dispatch.tasks.process_assignment_queue",
        "schedule": AUTO_ASSIGN_INTERVAL_SECONDS,
    },
    # reporte de tiempos por estado, cada hora en punto
    "timeline-report-hourly": {
        "task": "fleet_dispatch.tasks.write_status_duration_report",
        "schedule": crontab(minute=0),
    },
}

celery_app.conf.timezone = os.getenv("CELERY_TIMEZONE", "UTC")
