from __future__ import annotations

import threading
from contextlib import ExitStack
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, Type, TypeVar
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from cmms.errors import InvalidInput, NotFound
from cmms.logging_config import get_logger
from cmms.security import Identity

logger = get_logger("store")

ModelT = TypeVar("ModelT")
Guard = Callable[[Any], None]

ALWAYS_PROTECTED = frozenset({"id", "owner_id", "created_at"})

_kind_locks: dict[str, threading.RLock] = {}
_kind_locks_guard = threading.Lock()


def kind_lock(kind: str) -> threading.RLock:
    """Process-wide write lock for one resource kind."""
    with _kind_locks_guard:
        lock = _kind_locks.get(kind)
        if lock is None:
            lock = _kind_locks[kind] = threading.RLock()
        return lock


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class ResourceStore(Generic[ModelT]):
    """Uniform create/read/update/delete over one resource kind.

    ``mutable_fields`` is the allow-list for updates. ``protected_fields``
    (plus ``id``, ``owner_id``, ``created_at`` and the owner field) are silently dropped
    from caller data; anything else outside the allow-list is rejected.
    Mutations of one kind are serialised; the guard runs inside the lock,
    before any write.
    """

    def __init__(
        self,
        db: Session,
        model: Type[ModelT],
        *,
        id_prefix: str,
        mutable_fields: Iterable[str],
        protected_fields: Iterable[str] = (),
        owner_field: Optional[str] = None,
        label: Optional[str] = None,
    ) -> None:
        self.db = db
        self.model = model
        self.id_prefix = id_prefix
        self.mutable_fields = frozenset(mutable_fields)
        self.owner_field = owner_field
        protected = set(ALWAYS_PROTECTED) | set(protected_fields)
        if owner_field:
            protected.add(owner_field)
        self.protected_fields = frozenset(protected)
        self.label = label or model.__tablename__.replace("_", " ")
        self.lock = kind_lock(model.__tablename__)

    def _clean(self, fields: dict) -> dict:
        unknown = set(fields) - self.mutable_fields - self.protected_fields
        if unknown:
            raise InvalidInput(f"unknown {self.label} fields: {', '.join(sorted(unknown))}")
        return {key: _plain(value) for key, value in fields.items() if key in self.mutable_fields}

    def list(self, *criteria, order_by=None, **equals) -> list[ModelT]:
        query = select(self.model)
        for criterion in criteria:
            query = query.where(criterion)
        for key, value in equals.items():
            if value is not None:
                query = query.where(getattr(self.model, key) == _plain(value))
        if order_by is not None:
            query = query.order_by(order_by)
        return list(self.db.scalars(query).all())

    def find(self, resource_id: str) -> Optional[ModelT]:
        return self.db.get(self.model, resource_id)

    def get(self, resource_id: str) -> ModelT:
        resource = self.find(resource_id)
        if resource is None:
            raise NotFound(self.label, resource_id)
        return resource

    def create(self, fields: dict, owner: Optional[Identity] = None, **extra: Any) -> ModelT:
        values = self._clean(fields)
        values.update({key: _plain(value) for key, value in extra.items()})
        if self.owner_field:
            if owner is None:
                raise ValueError(f"{self.label} requires an owner")
            values[self.owner_field] = owner.id
        resource = self.model(id=new_id(self.id_prefix), created_at=_now(), **values)
        with self.lock:
            self.db.add(resource)
            self.db.commit()
            self.db.refresh(resource)
        logger.info("created %s %s", self.label, resource.id)
        return resource

    def update(self, resource_id: str, fields: dict, guard: Optional[Guard] = None) -> ModelT:
        values = self._clean(fields)
        with self.lock:
            resource = self.get(resource_id)
            if guard is not None:
                guard(resource)
            for key, value in values.items():
                setattr(resource, key, value)
            self.db.commit()
            self.db.refresh(resource)
        return resource

    def delete(
        self,
        resource_id: str,
        guard: Optional[Guard] = None,
        cascade: Iterable[tuple["ResourceStore", str]] = (),
    ) -> None:
        """Idempotent delete.

        ``cascade`` pairs a dependent store with its column referencing this
        resource; those rows go in the same commit as the resource itself.
        """
        cascade = tuple(cascade)
        with ExitStack() as locks:
            locks.enter_context(self.lock)
            for dependent, _ in cascade:
                locks.enter_context(dependent.lock)
            resource = self.find(resource_id)
            if resource is None:
                return
            if guard is not None:
                guard(resource)
            for dependent, column in cascade:
                self.db.execute(
                    delete(dependent.model).where(getattr(dependent.model, column) == resource_id)
                )
            self.db.delete(resource)
            self.db.commit()
        logger.info("deleted %s %s", self.label, resource_id)

