from sqlalchemy import Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime, timezone
from uuid import uuid4
from .database import Base

def _uuid() -> str:
    return str(uuid4())

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Technician(Base):
    __tablename__ = "technicians"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    location_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    specializations: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="available", nullable=False)  # available | busy | offline
    max_concurrent_orders: Mapped[int | None] = mapped_column(Integer, nullable=True)

    work_orders: Mapped[list["WorkOrder"]] = relationship("WorkOrder", back_populates="technician")

class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    license_plate: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)

class WorkOrder(Base):
    __tablename__ = "work_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    status: Mapped[str] = mapped_column(String(30), default="Open", nullable=False, index=True)
    priority: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    assigned_technician_id: Mapped[str | None] = mapped_column(ForeignKey("technicians.id", ondelete="SET NULL"), nullable=True, index=True)
    vehicle_id: Mapped[str | None] = mapped_column(ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    service_category_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    sla_due: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activity_log: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    technician: Mapped["Technician"] = relationship("Technician", back_populates="work_orders")
    vehicle: Mapped["Vehicle"] = relationship("Vehicle")

class AssignmentQueueItem(Base):
    __tablename__ = "assignment_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[str] = mapped_column(ForeignKey("work_orders.id", ondelete="CASCADE"), unique=True, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)  # pending | assigned | failed
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    work_order: Mapped["WorkOrder"] = relationship("WorkOrder")
