# src/line_planner/db/models.py
import datetime as dt

from sqlalchemy import (
    String, Integer, Float, Boolean, Date, DateTime, ForeignKey, UniqueConstraint, Index,
    CheckConstraint, Table, Column,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func
from . import Base

# ---------- Reference tables ----------
class DimLine(Base):
    __tablename__ = "production_lines"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    daily_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    operator_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # bumped by every schedule commit that adds allocations to this line
    schedule_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("daily_capacity > 0", name="ck_line_capacity_positive"),
    )


holiday_lines = Table(
    "holiday_lines",
    Base.metadata,
    Column("holiday_id", Integer, ForeignKey("holidays.id", ondelete="CASCADE"), primary_key=True),
    Column("line_id", String, ForeignKey("production_lines.id", ondelete="CASCADE"), primary_key=True),
)


class DimHoliday(Base):
    __tablename__ = "holidays"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    date: Mapped[dt.date] = mapped_column(Date, index=True, nullable=False)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lines = relationship("DimLine", secondary=holiday_lines, lazy="selectin")


class DimRampUpPlan(Base):
    __tablename__ = "ramp_up_plans"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    final_efficiency: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)

    steps = relationship(
        "RampUpStep",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="RampUpStep.day_number",
        lazy="selectin",
    )


class RampUpStep(Base):
    __tablename__ = "ramp_up_steps"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(String, ForeignKey("ramp_up_plans.id", ondelete="CASCADE"), index=True, nullable=False)
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    efficiency: Mapped[float] = mapped_column(Float, nullable=False)

    plan = relationship("DimRampUpPlan", back_populates="steps")
    __table_args__ = (
        UniqueConstraint("plan_id", "day_number", name="uq_ramp_up_plan_day"),
    )

# ---------- Orders and their daily allocation ----------
class PlanOrder(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    po_number: Mapped[str] = mapped_column(String, index=True, nullable=False)
    style_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    order_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    cut_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issue_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    smv: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    mo_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending|scheduled
    assigned_line_id: Mapped[str | None] = mapped_column(String, ForeignKey("production_lines.id"), index=True, nullable=True)
    plan_start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    plan_end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    planning_method: Mapped[str | None] = mapped_column(String, nullable=True)  # capacity|rampup
    ramp_up_plan_id: Mapped[str | None] = mapped_column(String, ForeignKey("ramp_up_plans.id"), nullable=True)

    # split parents are retired, never deleted
    split_from_id: Mapped[str | None] = mapped_column(String, ForeignKey("orders.id"), nullable=True)
    retired_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    daily = relationship(
        "OrderDailyProduction",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderDailyProduction.work_date",
        lazy="selectin",
    )
    split_from = relationship("PlanOrder", remote_side=[id])

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("order_quantity > 0", name="ck_order_quantity_positive"),
    )


class OrderDailyProduction(Base):
    __tablename__ = "order_daily_production"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    line_id: Mapped[str] = mapped_column(String, ForeignKey("production_lines.id"), nullable=False)
    work_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    order = relationship("PlanOrder", back_populates="daily")

    __table_args__ = (
        UniqueConstraint("order_id", "work_date", name="uq_order_day"),
        CheckConstraint("quantity > 0", name="ck_daily_quantity_positive"),
        Index("ix_daily_line_day", "line_id", "work_date"),
    )


__all__ = [
    "DimLine",
    "DimHoliday",
    "holiday_lines",
    "DimRampUpPlan",
    "RampUpStep",
    "PlanOrder",
    "OrderDailyProduction",
]
