from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from cmms.config import Settings, settings
from cmms.db import Base, get_db
from cmms.derived import is_low_stock, is_overdue, pm_next_due
from cmms.errors import CmmsError, Conflict, InvalidInput
from cmms.lifecycle import (
    CLOSED_WORK_ORDER_STATUSES,
    Criticality,
    Frequency,
    HandoffPriority,
    HandoffStatus,
    Priority,
    Role,
    WorkOrderStatus,
    next_handoff_status,
)
from cmms.logging_config import get_logger, setup_logging
from cmms.models import (
    Asset,
    DailyReport,
    Handoff,
    InventoryItem,
    PMSchedule,
    User,
    WorkOrder,
    WorkOrderComment,
    WorkOrderTemplate,
)
from cmms.policy import (
    ensure_inventory_update_allowed,
    ensure_visible,
    handoff_visible_to,
    owner_guard,
    report_visible_to,
    require_admin,
)
from cmms.security import (
    Identity,
    PasswordHasher,
    authenticate,
    find_user_by_email,
    identity_from_header,
    issue_token,
)
from cmms.store import ResourceStore

logger = get_logger("api")

_Date = date


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _iso(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _aware(value).isoformat()
    return value.isoformat()


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def _ok(data: Any) -> dict:
    return {"data": data, "meta": _meta()}


def _error(kind: str, message: str, details: Any = None) -> dict:
    error: dict[str, Any] = {"kind": kind, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error, "meta": _meta()}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

_password_hasher = PasswordHasher()


def get_settings() -> Settings:
    return settings


def get_hasher() -> PasswordHasher:
    return _password_hasher


def get_today() -> date:
    return date.today()


def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    app_settings: Settings = Depends(get_settings),
) -> Identity:
    return identity_from_header(authorization, app_settings)


def user_store(db: Session = Depends(get_db)) -> ResourceStore[User]:
    return ResourceStore(
        db, User, id_prefix="u", mutable_fields=("name", "email", "role", "password_hash"), label="user"
    )


def work_order_store(db: Session = Depends(get_db)) -> ResourceStore[WorkOrder]:
    return ResourceStore(
        db,
        WorkOrder,
        id_prefix="wo",
        mutable_fields=(
            "title",
            "description",
            "asset",
            "location",
            "priority",
            "assigned_to",
            "status",
            "due_date",
            "checklist",
        ),
        owner_field="owner_id",
        label="work order",
    )


def comment_store(db: Session = Depends(get_db)) -> ResourceStore[WorkOrderComment]:
    return ResourceStore(
        db,
        WorkOrderComment,
        id_prefix="c",
        mutable_fields=("text",),
        protected_fields=("work_order_id", "author_name"),
        owner_field="author_id",
        label="comment",
    )


def handoff_store(db: Session = Depends(get_db)) -> ResourceStore[Handoff]:
    return ResourceStore(
        db,
        Handoff,
        id_prefix="h",
        mutable_fields=("title", "notes", "priority", "due_date", "assigned_to", "status"),
        owner_field="owner_id",
        label="handoff",
    )


def report_store(db: Session = Depends(get_db)) -> ResourceStore[DailyReport]:
    return ResourceStore(
        db,
        DailyReport,
        id_prefix="r",
        mutable_fields=(
            "date",
            "shift",
            "tasks_completed",
            "issues",
            "parts_used",
            "hours",
            "next_day_notes",
            "image_urls",
        ),
        protected_fields=("owner_name",),
        owner_field="owner_id",
        label="daily report",
    )


def asset_store(db: Session = Depends(get_db)) -> ResourceStore[Asset]:
    return ResourceStore(
        db, Asset, id_prefix="a", mutable_fields=("name", "category", "location", "criticality", "notes")
    )


def inventory_store(db: Session = Depends(get_db)) -> ResourceStore[InventoryItem]:
    return ResourceStore(
        db, InventoryItem, id_prefix="i", mutable_fields=("name", "sku", "qty", "min"), label="inventory item"
    )


def pm_store(db: Session = Depends(get_db)) -> ResourceStore[PMSchedule]:
    return ResourceStore(
        db,
        PMSchedule,
        id_prefix="pm",
        mutable_fields=("asset", "task", "start_date", "frequency", "interval"),
        label="pm schedule",
    )


def template_store(db: Session = Depends(get_db)) -> ResourceStore[WorkOrderTemplate]:
    return ResourceStore(
        db,
        WorkOrderTemplate,
        id_prefix="t",
        mutable_fields=("name", "payload"),
        owner_field="owner_id",
        label="work order template",
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def init_db(db: Session, app_settings: Settings, hasher: PasswordHasher) -> None:
    """Create tables and the single bootstrap admin if it is missing."""
    Base.metadata.create_all(bind=db.get_bind())
    if find_user_by_email(db, app_settings.bootstrap_admin_email) is not None:
        return
    users = user_store(db)
    users.create(
        {
            "name": app_settings.bootstrap_admin_name,
            "email": app_settings.bootstrap_admin_email,
            "role": Role.ADMIN,
            "password_hash": hasher.hash(app_settings.bootstrap_admin_password),
        }
    )
    logger.info("bootstrap admin created: %s", app_settings.bootstrap_admin_email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_settings = app.dependency_overrides.get(get_settings, get_settings)()
    setup_logging(app_settings.log_level)
    provider = app.dependency_overrides.get(get_db, get_db)
    sessions = provider()
    db = next(sessions)
    try:
        init_db(db, app_settings, app.dependency_overrides.get(get_hasher, get_hasher)())
    finally:
        sessions.close()
    logger.info("CMMS API ready")
    yield


app = FastAPI(title="CMMS API", lifespan=lifespan)


@app.exception_handler(CmmsError)
async def handle_cmms_error(request: Request, exc: CmmsError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error(exc.kind, exc.message))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=InvalidInput.status_code,
        content=_error(InvalidInput.kind, "request validation failed", jsonable_encoder(exc.errors())),
    )


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


@app.get("/api/health", tags=["health"])
def api_health_check() -> dict:
    return {"ok": True}


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class _Body(BaseModel):
    """Request body; ``id``/``owner_id``/``created_at`` are accepted but never applied."""

    model_config = {"extra": "forbid"}
    id: Optional[Any] = None
    owner_id: Optional[Any] = None
    created_at: Optional[Any] = None


def _changes(payload: BaseModel, nullable: tuple[str, ...] = ()) -> dict:
    fields = payload.model_dump(exclude_unset=True)
    return {key: value for key, value in fields.items() if value is not None or key in nullable}


# ---------------------------------------------------------------------------
# Auth & users
# ---------------------------------------------------------------------------


class LoginBody(BaseModel):
    model_config = {"json_schema_extra": {"example": {"email": "admin@cmms.local", "password": "admin123"}}}
    email: str
    password: str


class RegisterBody(BaseModel):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {"example": {"name": "Jo Tech", "email": "jo@cmms.local", "password": "s3cret", "role": "tech"}},
    }
    name: str = Field(min_length=1)
    email: str
    password: Optional[str] = None
    role: Role = Role.TECH

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("invalid email address")
        return value


class PasswordChangeBody(BaseModel):
    model_config = {"extra": "forbid"}
    current_password: str
    new_password: str = Field(min_length=1)


def _user_out(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@app.post("/api/auth/login", tags=["Auth"])
def login(
    payload: LoginBody,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    app_settings: Settings = Depends(get_settings),
) -> dict:
    user = authenticate(db, payload.email, payload.password, hasher)
    identity = Identity.from_user(user)
    logger.info("login %s", user.id)
    return _ok({"token": issue_token(identity, app_settings), "user": identity.as_dict()})


@app.post("/api/auth/register", tags=["Auth"])
def register(
    payload: RegisterBody,
    identity: Identity = Depends(get_current_identity),
    users: ResourceStore[User] = Depends(user_store),
    hasher: PasswordHasher = Depends(get_hasher),
    app_settings: Settings = Depends(get_settings),
) -> dict:
    require_admin(identity)
    with users.lock:
        if find_user_by_email(users.db, payload.email) is not None:
            raise Conflict("Email exists")
        user = users.create(
            {
                "name": payload.name,
                "email": payload.email,
                "role": payload.role,
                "password_hash": hasher.hash(payload.password or app_settings.default_user_password),
            }
        )
    logger.info("user %s registered by %s", user.id, identity.id)
    return _ok(_user_out(user))


@app.get("/api/auth/me", tags=["Auth"])
def who_am_i(identity: Identity = Depends(get_current_identity)) -> dict:
    return _ok(identity.as_dict())


@app.put("/api/users/me/password", tags=["Users"])
def change_password(
    payload: PasswordChangeBody,
    identity: Identity = Depends(get_current_identity),
    users: ResourceStore[User] = Depends(user_store),
    hasher: PasswordHasher = Depends(get_hasher),
) -> dict:
    user = users.get(identity.id)
    if not hasher.verify(payload.current_password, user.password_hash):
        raise InvalidInput("Current password incorrect")
    users.update(user.id, {"password_hash": hasher.hash(payload.new_password)})
    logger.info("password changed for %s", user.id)
    return _ok({"ok": True})


@app.get("/api/users", tags=["Users"])
def list_users(
    identity: Identity = Depends(get_current_identity),
    users: ResourceStore[User] = Depends(user_store),
) -> dict:
    require_admin(identity)
    return _ok([_user_out(user) for user in users.list(order_by=User.name)])


@app.get("/api/techs", tags=["Users"])
def list_techs(
    identity: Identity = Depends(get_current_identity),
    users: ResourceStore[User] = Depends(user_store),
) -> dict:
    techs = users.list(order_by=User.name, role=Role.TECH)
    return _ok([{"name": user.name, "email": user.email, "role": user.role} for user in techs])


# ---------------------------------------------------------------------------
# Work orders & comments
# ---------------------------------------------------------------------------


class WorkOrderCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "title": "Conveyor B - belt tracking",
                "description": "Belt drifting to the right near the head pulley.",
                "asset": "Conveyor B",
                "location": "Line 2",
                "priority": "High",
                "status": "In Progress",
                "due_date": "2026-01-16",
            }
        },
    }
    title: str = Field(min_length=1)
    description: str = ""
    asset: str = ""
    location: str = ""
    priority: Priority = Priority.MEDIUM
    assigned_to: str = ""
    status: WorkOrderStatus = WorkOrderStatus.OPEN
    due_date: Optional[date] = None
    checklist: list[Any] = Field(default_factory=list)


class WorkOrderUpdate(_Body):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    asset: Optional[str] = None
    location: Optional[str] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[str] = None
    status: Optional[WorkOrderStatus] = None
    due_date: Optional[date] = None
    checklist: Optional[list[Any]] = None


class CommentCreate(_Body):
    text: str = Field(min_length=1)


def _work_order_out(work_order: WorkOrder, today: date) -> dict:
    return {
        "id": work_order.id,
        "title": work_order.title,
        "description": work_order.description,
        "asset": work_order.asset,
        "location": work_order.location,
        "priority": work_order.priority,
        "assigned_to": work_order.assigned_to,
        "status": work_order.status,
        "due_date": _iso(work_order.due_date),
        "checklist": work_order.checklist or [],
        "owner_id": work_order.owner_id,
        "created_at": _iso(work_order.created_at),
        "overdue": is_overdue(work_order.due_date, work_order.status, today),
    }


def _comment_out(comment: WorkOrderComment) -> dict:
    return {
        "id": comment.id,
        "work_order_id": comment.work_order_id,
        "author_id": comment.author_id,
        "author_name": comment.author_name,
        "text": comment.text,
        "created_at": _iso(comment.created_at),
    }


@app.get("/api/workorders", tags=["Work Orders"])
def list_work_orders(
    status: Optional[WorkOrderStatus] = Query(default=None),
    assigned_to: Optional[str] = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    today: date = Depends(get_today),
) -> dict:
    rows = store.list(order_by=WorkOrder.created_at.desc(), status=status, assigned_to=assigned_to)
    return _ok([_work_order_out(row, today) for row in rows])


@app.post("/api/workorders", tags=["Work Orders"])
def create_work_order(
    payload: WorkOrderCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    today: date = Depends(get_today),
) -> dict:
    work_order = store.create(payload.model_dump(), owner=identity)
    return _ok(_work_order_out(work_order, today))


@app.get("/api/workorders/{work_order_id}", tags=["Work Orders"])
def get_work_order(
    work_order_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    today: date = Depends(get_today),
) -> dict:
    return _ok(_work_order_out(store.get(work_order_id), today))


@app.put("/api/workorders/{work_order_id}", tags=["Work Orders"])
def update_work_order(
    work_order_id: str,
    payload: WorkOrderUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    today: date = Depends(get_today),
) -> dict:
    work_order = store.update(work_order_id, _changes(payload, nullable=("due_date",)), guard=owner_guard(identity))
    return _ok(_work_order_out(work_order, today))


@app.delete("/api/workorders/{work_order_id}", tags=["Work Orders"])
def delete_work_order(
    work_order_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    comments: ResourceStore[WorkOrderComment] = Depends(comment_store),
) -> dict:
    store.delete(work_order_id, guard=owner_guard(identity), cascade=((comments, "work_order_id"),))
    return _ok({"ok": True})


@app.get("/api/workorders/{work_order_id}/comments", tags=["Work Order Comments"])
def list_work_order_comments(
    work_order_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    comments: ResourceStore[WorkOrderComment] = Depends(comment_store),
) -> dict:
    store.get(work_order_id)
    rows = comments.list(order_by=WorkOrderComment.created_at.desc(), work_order_id=work_order_id)
    return _ok([_comment_out(row) for row in rows])


@app.post("/api/workorders/{work_order_id}/comments", tags=["Work Order Comments"])
def create_work_order_comment(
    work_order_id: str,
    payload: CommentCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrder] = Depends(work_order_store),
    comments: ResourceStore[WorkOrderComment] = Depends(comment_store),
) -> dict:
    store.get(work_order_id)
    comment = comments.create(
        payload.model_dump(), owner=identity, work_order_id=work_order_id, author_name=identity.name
    )
    return _ok(_comment_out(comment))


@app.delete("/api/workorders/{work_order_id}/comments/{comment_id}", tags=["Work Order Comments"])
def delete_work_order_comment(
    work_order_id: str,
    comment_id: str,
    identity: Identity = Depends(get_current_identity),
    comments: ResourceStore[WorkOrderComment] = Depends(comment_store),
) -> dict:
    comment = comments.find(comment_id)
    if comment is not None and comment.work_order_id == work_order_id:
        comments.delete(comment_id, guard=owner_guard(identity, owner_field="author_id"))
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class InventoryCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {"example": {"name": '3/4" Hose Clamp', "sku": "HC-34", "qty": 14, "min": 10}},
    }
    name: str = Field(min_length=1)
    sku: str = ""
    qty: int = Field(default=0, ge=0)
    min: int = Field(default=0, ge=0)


class InventoryUpdate(_Body):
    name: Optional[str] = Field(default=None, min_length=1)
    sku: Optional[str] = None
    qty: Optional[int] = Field(default=None, ge=0)
    min: Optional[int] = Field(default=None, ge=0)


class InventoryAdjust(BaseModel):
    model_config = {"extra": "forbid", "json_schema_extra": {"example": {"delta": -1}}}
    delta: int


def _inventory_out(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "sku": item.sku,
        "qty": item.qty,
        "min": item.min,
        "created_at": _iso(item.created_at),
        "low_stock": is_low_stock(item.qty, item.min),
    }


@app.get("/api/inventory", tags=["Inventory"])
def list_inventory(
    low_stock: Optional[bool] = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[InventoryItem] = Depends(inventory_store),
) -> dict:
    data = [_inventory_out(item) for item in store.list(order_by=InventoryItem.name)]
    if low_stock is not None:
        data = [item for item in data if item["low_stock"] == low_stock]
    return _ok(data)


@app.post("/api/inventory", tags=["Inventory"])
def create_inventory_item(
    payload: InventoryCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[InventoryItem] = Depends(inventory_store),
) -> dict:
    require_admin(identity)
    return _ok(_inventory_out(store.create(payload.model_dump())))


@app.put("/api/inventory/{item_id}", tags=["Inventory"])
def update_inventory_item(
    item_id: str,
    payload: InventoryUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[InventoryItem] = Depends(inventory_store),
) -> dict:
    changes = _changes(payload)
    ensure_inventory_update_allowed(
        {key: value for key, value in changes.items() if key not in store.protected_fields}, identity
    )
    return _ok(_inventory_out(store.update(item_id, changes)))


@app.post("/api/inventory/{item_id}/adjust", tags=["Inventory"])
def adjust_inventory_item(
    item_id: str,
    payload: InventoryAdjust,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[InventoryItem] = Depends(inventory_store),
) -> dict:
    with store.lock:
        item = store.get(item_id)
        qty = item.qty + payload.delta
        if qty < 0:
            raise InvalidInput(f"quantity cannot go below zero (have {item.qty}, delta {payload.delta})")
        item = store.update(item_id, {"qty": qty})
    return _ok(_inventory_out(item))


@app.delete("/api/inventory/{item_id}", tags=["Inventory"])
def delete_inventory_item(
    item_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[InventoryItem] = Depends(inventory_store),
) -> dict:
    require_admin(identity)
    store.delete(item_id)
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# PM schedules
# ---------------------------------------------------------------------------


class PMCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {"asset": "Mixer 1", "task": "Grease bearings", "start_date": "2026-01-01", "frequency": "Monthly", "interval": 1}
        },
    }
    asset: str = Field(min_length=1)
    task: str = Field(min_length=1)
    start_date: date
    frequency: Frequency = Frequency.MONTHLY
    interval: int = Field(default=1, ge=1)


class PMUpdate(_Body):
    asset: Optional[str] = Field(default=None, min_length=1)
    task: Optional[str] = Field(default=None, min_length=1)
    start_date: Optional[date] = None
    frequency: Optional[Frequency] = None
    interval: Optional[int] = Field(default=None, ge=1)


def _pm_out(pm: PMSchedule, today: date) -> dict:
    return {
        "id": pm.id,
        "asset": pm.asset,
        "task": pm.task,
        "start_date": _iso(pm.start_date),
        "frequency": pm.frequency,
        "interval": pm.interval,
        "created_at": _iso(pm.created_at),
        "next_due": _iso(pm_next_due(pm.start_date, pm.frequency, pm.interval, today)),
    }


@app.get("/api/pms", tags=["PM Schedules"])
def list_pm_schedules(
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[PMSchedule] = Depends(pm_store),
    today: date = Depends(get_today),
) -> dict:
    return _ok([_pm_out(pm, today) for pm in store.list(order_by=PMSchedule.created_at.desc())])


@app.post("/api/pms", tags=["PM Schedules"])
def create_pm_schedule(
    payload: PMCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[PMSchedule] = Depends(pm_store),
    today: date = Depends(get_today),
) -> dict:
    require_admin(identity)
    return _ok(_pm_out(store.create(payload.model_dump()), today))


@app.put("/api/pms/{pm_id}", tags=["PM Schedules"])
def update_pm_schedule(
    pm_id: str,
    payload: PMUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[PMSchedule] = Depends(pm_store),
    today: date = Depends(get_today),
) -> dict:
    require_admin(identity)
    return _ok(_pm_out(store.update(pm_id, _changes(payload)), today))


@app.delete("/api/pms/{pm_id}", tags=["PM Schedules"])
def delete_pm_schedule(
    pm_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[PMSchedule] = Depends(pm_store),
) -> dict:
    require_admin(identity)
    store.delete(pm_id)
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Daily reports
# ---------------------------------------------------------------------------


class ReportCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "date": "2026-01-15",
                "shift": "Day",
                "tasks_completed": "Replaced belt on Conveyor B",
                "hours": 8,
                "image_urls": ["https://example.com/belt.jpg"],
            }
        },
    }
    owner_name: Optional[Any] = None
    date: _Date
    shift: str = ""
    tasks_completed: str = ""
    issues: str = ""
    parts_used: str = ""
    hours: float = Field(default=0, ge=0)
    next_day_notes: str = ""
    image_urls: list[str] = Field(default_factory=list)


class ReportUpdate(_Body):
    owner_name: Optional[Any] = None
    date: Optional[_Date] = None
    shift: Optional[str] = None
    tasks_completed: Optional[str] = None
    issues: Optional[str] = None
    parts_used: Optional[str] = None
    hours: Optional[float] = Field(default=None, ge=0)
    next_day_notes: Optional[str] = None
    image_urls: Optional[list[str]] = None


def _report_out(report: DailyReport) -> dict:
    return {
        "id": report.id,
        "date": _iso(report.date),
        "shift": report.shift,
        "tasks_completed": report.tasks_completed,
        "issues": report.issues,
        "parts_used": report.parts_used,
        "hours": report.hours,
        "next_day_notes": report.next_day_notes,
        "image_urls": report.image_urls or [],
        "owner_id": report.owner_id,
        "owner_name": report.owner_name,
        "created_at": _iso(report.created_at),
    }


@app.get("/api/reports", tags=["Daily Reports"])
def list_reports(
    report_date: Optional[date] = Query(default=None, alias="date"),
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[DailyReport] = Depends(report_store),
) -> dict:
    owner_id = None if identity.is_admin else identity.id
    rows = store.list(order_by=DailyReport.created_at.desc(), owner_id=owner_id, date=report_date)
    return _ok([_report_out(row) for row in rows])


@app.post("/api/reports", tags=["Daily Reports"])
def create_report(
    payload: ReportCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[DailyReport] = Depends(report_store),
) -> dict:
    report = store.create(payload.model_dump(), owner=identity, owner_name=identity.name)
    return _ok(_report_out(report))


@app.get("/api/reports/{report_id}", tags=["Daily Reports"])
def get_report(
    report_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[DailyReport] = Depends(report_store),
) -> dict:
    report = store.get(report_id)
    ensure_visible(report_visible_to(report, identity))
    return _ok(_report_out(report))


@app.put("/api/reports/{report_id}", tags=["Daily Reports"])
def update_report(
    report_id: str,
    payload: ReportUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[DailyReport] = Depends(report_store),
) -> dict:
    report = store.update(report_id, _changes(payload), guard=owner_guard(identity))
    return _ok(_report_out(report))


@app.delete("/api/reports/{report_id}", tags=["Daily Reports"])
def delete_report(
    report_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[DailyReport] = Depends(report_store),
) -> dict:
    store.delete(report_id, guard=owner_guard(identity))
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Handoffs
# ---------------------------------------------------------------------------


class HandoffCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {"title": "Boiler 2 pressure check", "notes": "Reading high at 14:00", "priority": "High", "due_date": "2026-01-16", "assigned_to": "Jo Tech"}
        },
    }
    title: str = Field(min_length=1)
    notes: str = ""
    priority: HandoffPriority = HandoffPriority.MEDIUM
    due_date: Optional[date] = None
    assigned_to: str = ""
    # New handoffs always start Open; a supplied status is ignored.
    status: Optional[HandoffStatus] = None


class HandoffUpdate(_Body):
    title: Optional[str] = Field(default=None, min_length=1)
    notes: Optional[str] = None
    priority: Optional[HandoffPriority] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    status: Optional[HandoffStatus] = None


def _handoff_out(handoff: Handoff, today: date) -> dict:
    return {
        "id": handoff.id,
        "title": handoff.title,
        "notes": handoff.notes,
        "priority": handoff.priority,
        "due_date": _iso(handoff.due_date),
        "assigned_to": handoff.assigned_to,
        "status": handoff.status,
        "owner_id": handoff.owner_id,
        "created_at": _iso(handoff.created_at),
        "overdue": handoff.status != HandoffStatus.DONE.value and is_overdue(handoff.due_date, handoff.status, today),
    }


@app.get("/api/handoffs", tags=["Handoffs"])
def list_handoffs(
    status: Optional[HandoffStatus] = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    rows = store.list(order_by=Handoff.created_at.desc(), status=status)
    return _ok([_handoff_out(row, today) for row in rows if handoff_visible_to(row, identity)])


@app.post("/api/handoffs", tags=["Handoffs"])
def create_handoff(
    payload: HandoffCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    fields = payload.model_dump()
    fields["status"] = HandoffStatus.OPEN
    return _ok(_handoff_out(store.create(fields, owner=identity), today))


@app.get("/api/handoffs/{handoff_id}", tags=["Handoffs"])
def get_handoff(
    handoff_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    handoff = store.get(handoff_id)
    ensure_visible(handoff_visible_to(handoff, identity))
    return _ok(_handoff_out(handoff, today))


@app.put("/api/handoffs/{handoff_id}", tags=["Handoffs"])
def update_handoff(
    handoff_id: str,
    payload: HandoffUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    handoff = store.update(handoff_id, _changes(payload, nullable=("due_date",)), guard=owner_guard(identity))
    return _ok(_handoff_out(handoff, today))


@app.post("/api/handoffs/{handoff_id}/advance", tags=["Handoffs"])
def advance_handoff(
    handoff_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    with store.lock:
        current = store.get(handoff_id)
        handoff = store.update(
            handoff_id, {"status": next_handoff_status(current.status)}, guard=owner_guard(identity)
        )
    return _ok(_handoff_out(handoff, today))


@app.delete("/api/handoffs/{handoff_id}", tags=["Handoffs"])
def delete_handoff(
    handoff_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Handoff] = Depends(handoff_store),
) -> dict:
    store.delete(handoff_id, guard=owner_guard(identity))
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {"example": {"name": "Conveyor B", "category": "Conveyor", "location": "Line 2", "criticality": "High"}},
    }
    name: str = Field(min_length=1)
    category: str = ""
    location: str = ""
    criticality: Criticality = Criticality.MEDIUM
    notes: str = ""


class AssetUpdate(_Body):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    location: Optional[str] = None
    criticality: Optional[Criticality] = None
    notes: Optional[str] = None


def _asset_out(asset: Asset) -> dict:
    return {
        "id": asset.id,
        "name": asset.name,
        "category": asset.category,
        "location": asset.location,
        "criticality": asset.criticality,
        "notes": asset.notes,
        "created_at": _iso(asset.created_at),
    }


@app.get("/api/assets", tags=["Assets"])
def list_assets(
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Asset] = Depends(asset_store),
) -> dict:
    return _ok([_asset_out(asset) for asset in store.list(order_by=Asset.name)])


@app.post("/api/assets", tags=["Assets"])
def create_asset(
    payload: AssetCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Asset] = Depends(asset_store),
) -> dict:
    require_admin(identity)
    return _ok(_asset_out(store.create(payload.model_dump())))


@app.put("/api/assets/{asset_id}", tags=["Assets"])
def update_asset(
    asset_id: str,
    payload: AssetUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Asset] = Depends(asset_store),
) -> dict:
    require_admin(identity)
    return _ok(_asset_out(store.update(asset_id, _changes(payload))))


@app.delete("/api/assets/{asset_id}", tags=["Assets"])
def delete_asset(
    asset_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[Asset] = Depends(asset_store),
) -> dict:
    require_admin(identity)
    store.delete(asset_id)
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Work order templates
# ---------------------------------------------------------------------------


class TemplateCreate(_Body):
    model_config = {
        "extra": "forbid",
        "json_schema_extra": {"example": {"name": "Monthly mixer PM", "payload": {"title": "Mixer PM - monthly", "priority": "Medium"}}},
    }
    name: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class TemplateUpdate(_Body):
    name: Optional[str] = Field(default=None, min_length=1)
    payload: Optional[dict[str, Any]] = None


def _template_out(template: WorkOrderTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "payload": template.payload or {},
        "owner_id": template.owner_id,
        "created_at": _iso(template.created_at),
    }


@app.get("/api/wo-templates", tags=["Work Order Templates"])
def list_templates(
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrderTemplate] = Depends(template_store),
) -> dict:
    return _ok([_template_out(row) for row in store.list(order_by=WorkOrderTemplate.created_at.desc())])


@app.post("/api/wo-templates", tags=["Work Order Templates"])
def create_template(
    payload: TemplateCreate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrderTemplate] = Depends(template_store),
) -> dict:
    require_admin(identity)
    return _ok(_template_out(store.create(payload.model_dump(), owner=identity)))


@app.put("/api/wo-templates/{template_id}", tags=["Work Order Templates"])
def update_template(
    template_id: str,
    payload: TemplateUpdate,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrderTemplate] = Depends(template_store),
) -> dict:
    require_admin(identity)
    return _ok(_template_out(store.update(template_id, _changes(payload))))


@app.delete("/api/wo-templates/{template_id}", tags=["Work Order Templates"])
def delete_template(
    template_id: str,
    identity: Identity = Depends(get_current_identity),
    store: ResourceStore[WorkOrderTemplate] = Depends(template_store),
) -> dict:
    require_admin(identity)
    store.delete(template_id)
    return _ok({"ok": True})


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@app.get("/api/dashboard", tags=["Dashboard"])
def dashboard(
    identity: Identity = Depends(get_current_identity),
    work_order_rows: ResourceStore[WorkOrder] = Depends(work_order_store),
    inventory: ResourceStore[InventoryItem] = Depends(inventory_store),
    report_rows: ResourceStore[DailyReport] = Depends(report_store),
    handoff_rows: ResourceStore[Handoff] = Depends(handoff_store),
    today: date = Depends(get_today),
) -> dict:
    work_orders = work_order_rows.list()
    items = inventory.list()
    reports = report_rows.list(owner_id=None if identity.is_admin else identity.id)

    my_name = identity.name.lower()
    handoffs = [
        handoff
        for handoff in handoff_rows.list()
        if handoff.status != HandoffStatus.DONE.value and (handoff.assigned_to or "").lower() == my_name
    ]
    total = len(work_orders)
    completed = sum(1 for wo in work_orders if wo.status == WorkOrderStatus.COMPLETED.value)
    open_orders = [wo for wo in work_orders if wo.status not in CLOSED_WORK_ORDER_STATUSES]
    cutoff = _now() - timedelta(days=30)
    return _ok(
        {
            "open_work_orders": len(open_orders),
            "overdue_work_orders": sum(1 for wo in work_orders if is_overdue(wo.due_date, wo.status, today)),
            "completed_work_orders": completed,
            "completion_rate": round(completed * 100 / total) if total else 0,
            "low_stock_items": sum(1 for item in items if is_low_stock(item.qty, item.min)),
            "daily_reports_30d": sum(1 for report in reports if _aware(report.created_at) > cutoff),
            "my_open_work_orders": sum(1 for wo in open_orders if (wo.assigned_to or "").lower() == my_name),
            "my_open_handoffs": len(handoffs),
        }
    )
