from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from cmms.db import Base

JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "app_user"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'tech')", name="ck_app_user_role"),
        Index("ix_app_user_email", "email", unique=True),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="tech")
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class WorkOrder(Base):
    __tablename__ = "work_order"
    __table_args__ = (Index("ix_work_order_owner", "owner_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    asset: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="Medium")
    assigned_to: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="Open")
    due_date: Mapped[Date | None] = mapped_column(Date)
    checklist: Mapped[list] = mapped_column(JSON_TYPE, nullable=False, default=list)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class WorkOrderComment(Base):
    __tablename__ = "work_order_comment"
    __table_args__ = (Index("ix_work_order_comment_work_order", "work_order_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    work_order_id: Mapped[str] = mapped_column(
        Text, ForeignKey("work_order.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(Text, nullable=False)
    author_name: Mapped[str] = mapped_column(Text, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class Handoff(Base):
    __tablename__ = "handoff"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="Medium")
    due_date: Mapped[Date | None] = mapped_column(Date)
    assigned_to: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="Open")
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class DailyReport(Base):
    __tablename__ = "daily_report"
    __table_args__ = (
        CheckConstraint("hours >= 0", name="ck_daily_report_hours"),
        Index("ix_daily_report_owner_date", "owner_id", "date"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    date: Mapped[Date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tasks_completed: Mapped[str] = mapped_column(Text, nullable=False, default="")
    issues: Mapped[str] = mapped_column(Text, nullable=False, default="")
    parts_used: Mapped[str] = mapped_column(Text, nullable=False, default="")
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    next_day_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_urls: Mapped[list] = mapped_column(JSON_TYPE, nullable=False, default=list)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    owner_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class Asset(Base):
    __tablename__ = "asset"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    criticality: Mapped[str] = mapped_column(Text, nullable=False, default="Medium")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class InventoryItem(Base):
    __tablename__ = "inventory_item"
    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_inventory_item_qty"),
        CheckConstraint('"min" >= 0', name="ck_inventory_item_min"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False, default="")
    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class PMSchedule(Base):
    __tablename__ = "pm_schedule"
    __table_args__ = (
        CheckConstraint('"interval" >= 1', name="ck_pm_schedule_interval"),
        CheckConstraint(
            "frequency IN ('Daily', 'Weekly', 'Monthly')", name="ck_pm_schedule_frequency"
        ),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    asset: Mapped[str] = mapped_column(Text, nullable=False)
    task: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[Date] = mapped_column(Date, nullable=False)
    frequency: Mapped[str] = mapped_column(Text, nullable=False, default="Monthly")
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class WorkOrderTemplate(Base):
    __tablename__ = "work_order_template"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False, default=dict)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
