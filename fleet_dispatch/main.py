from fastapi import FastAPI
from .database import engine, Base
from . import models  # noqa: F401  (registra las tablas en Base.metadata)
from .routers import technicians, work_orders

app = FastAPI(title="Fleet Dispatch API", version="0.1.0")

# Crear tablas al inicio (usa Alembic para producción)
Base.metadata.create_all(bind=engine)

@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}

app.include_router(technicians.router)
app.include_router(technicians.vehicles_router)
app.include_router(work_orders.router)
