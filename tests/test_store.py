import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cmms.db import Base
from cmms.errors import Forbidden, InvalidInput, NotFound
from cmms.models import InventoryItem, WorkOrder, WorkOrderComment
from cmms.policy import owner_guard
from cmms.security import Identity
from cmms.store import ResourceStore, kind_lock

JO = Identity(id="u_jo", name="Jo", email="jo@cmms.local", role="tech")
SAM = Identity(id="u_sam", name="Sam", email="sam@cmms.local", role="tech")

WORK_ORDER_FIELDS = ("title", "description", "status", "due_date", "checklist")


def _make_session() -> Session:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


def _work_orders(db: Session) -> ResourceStore:
    return ResourceStore(db, WorkOrder, id_prefix="wo", mutable_fields=WORK_ORDER_FIELDS, owner_field="owner_id")


def _comments(db: Session) -> ResourceStore:
    return ResourceStore(
        db,
        WorkOrderComment,
        id_prefix="c",
        mutable_fields=("text",),
        protected_fields=("work_order_id", "author_name"),
        owner_field="author_id",
    )


def test_create_assigns_id_owner_and_timestamp() -> None:
    store = _work_orders(_make_session())
    work_order = store.create({"title": "Leak", "owner_id": "u_sam", "id": "forced"}, owner=JO)
    assert work_order.id.startswith("wo_")
    assert work_order.id != "forced"
    assert work_order.owner_id == "u_jo"
    assert work_order.created_at is not None
    assert work_order.status == "Open"


def test_update_merges_allowed_fields_only() -> None:
    store = _work_orders(_make_session())
    work_order = store.create({"title": "Leak"}, owner=JO)
    created_at = work_order.created_at

    updated = store.update(work_order.id, {"status": "On Hold", "owner_id": "u_sam", "created_at": None})
    assert updated.status == "On Hold"
    assert updated.title == "Leak"
    assert updated.owner_id == "u_jo"
    assert updated.created_at == created_at

    with pytest.raises(InvalidInput):
        store.update(work_order.id, {"asset_tag": "X"})


def test_update_missing_raises_not_found() -> None:
    store = _work_orders(_make_session())
    with pytest.raises(NotFound):
        store.update("wo_missing", {"title": "x"})
    with pytest.raises(NotFound):
        store.get("wo_missing")
    assert store.find("wo_missing") is None


def test_guard_runs_before_write() -> None:
    store = _work_orders(_make_session())
    work_order = store.create({"title": "Leak"}, owner=JO)
    with pytest.raises(Forbidden):
        store.update(work_order.id, {"title": "Hijacked"}, guard=owner_guard(SAM))
    store.db.expire_all()
    assert store.get(work_order.id).title == "Leak"

    with pytest.raises(Forbidden):
        store.delete(work_order.id, guard=owner_guard(SAM))
    assert store.find(work_order.id) is not None


def test_delete_is_idempotent() -> None:
    store = _work_orders(_make_session())
    work_order = store.create({"title": "Leak"}, owner=JO)
    store.delete(work_order.id, guard=owner_guard(JO))
    store.delete(work_order.id, guard=owner_guard(SAM))
    assert store.list() == []


def test_create_drops_identity_fields_on_unowned_kind() -> None:
    store = ResourceStore(_make_session(), InventoryItem, id_prefix="i", mutable_fields=("name", "sku", "qty", "min"))
    item = store.create({"name": "Clamp", "qty": 3, "id": None, "owner_id": None, "created_at": None})
    assert item.id.startswith("i_")
    assert item.qty == 3
    assert item.created_at is not None


def test_delete_cascades_dependents_in_one_commit(monkeypatch) -> None:
    db = _make_session()
    store = _work_orders(db)
    comments = _comments(db)
    work_order = store.create({"title": "Leak"}, owner=JO)
    other = store.create({"title": "Noise"}, owner=JO)
    comments.create({"text": "first"}, owner=SAM, work_order_id=work_order.id, author_name="Sam")
    comments.create({"text": "second"}, owner=JO, work_order_id=work_order.id, author_name="Jo")
    kept = comments.create({"text": "elsewhere"}, owner=JO, work_order_id=other.id, author_name="Jo")

    commits = []
    original_commit = db.commit

    def counting_commit() -> None:
        commits.append(True)
        original_commit()

    monkeypatch.setattr(db, "commit", counting_commit)
    store.delete(work_order.id, guard=owner_guard(JO), cascade=((comments, "work_order_id"),))

    assert len(commits) == 1
    assert store.find(work_order.id) is None
    assert [comment.id for comment in comments.list()] == [kept.id]


def test_cascade_is_skipped_when_guard_refuses() -> None:
    db = _make_session()
    store = _work_orders(db)
    comments = _comments(db)
    work_order = store.create({"title": "Leak"}, owner=JO)
    comments.create({"text": "note"}, owner=JO, work_order_id=work_order.id, author_name="Jo")

    with pytest.raises(Forbidden):
        store.delete(work_order.id, guard=owner_guard(SAM), cascade=((comments, "work_order_id"),))
    assert store.find(work_order.id) is not None
    assert len(comments.list(work_order_id=work_order.id)) == 1


def test_list_filters_by_equality() -> None:
    db = _make_session()
    store = ResourceStore(db, InventoryItem, id_prefix="i", mutable_fields=("name", "sku", "qty", "min"))
    store.create({"name": "Clamp", "qty": 1, "min": 2})
    store.create({"name": "Oil", "qty": 5, "min": 2})
    assert [item.name for item in store.list(order_by=InventoryItem.name)] == ["Clamp", "Oil"]
    assert [item.name for item in store.list(qty=5)] == ["Oil"]
    assert len(store.list(qty=None)) == 2


def test_owned_kind_requires_owner() -> None:
    store = _work_orders(_make_session())
    with pytest.raises(ValueError):
        store.create({"title": "Orphan"})


def test_kind_lock_is_shared_per_kind() -> None:
    assert kind_lock("work_order") is kind_lock("work_order")
    assert kind_lock("work_order") is not kind_lock("inventory_item")


def test_concurrent_writes_are_serialised() -> None:
    lock = kind_lock("work_order")
    entered = threading.Event()
    released = threading.Event()

    def holder() -> None:
        with lock:
            entered.set()
            released.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    entered.wait(timeout=5)
    assert lock.acquire(blocking=False) is False
    released.set()
    thread.join(timeout=5)
    assert lock.acquire(blocking=False) is True
    lock.release()
