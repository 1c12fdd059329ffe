"""Ownership and role rules.

Every check here runs before the store is written to. A failed check raises
``Forbidden``; it never degrades into a partial update.
"""

from __future__ import annotations

from typing import Callable

from cmms.errors import Forbidden
from cmms.logging_config import get_logger
from cmms.security import Identity

logger = get_logger("policy")

INVENTORY_QTY_FIELDS = frozenset({"qty"})


def can_modify(owner_id: str, identity: Identity) -> bool:
    return identity.is_admin or owner_id == identity.id


def ensure_can_modify(owner_id: str, identity: Identity) -> None:
    if not can_modify(owner_id, identity):
        logger.warning("forbidden: %s is not owner %s", identity.id, owner_id)
        raise Forbidden("Forbidden")


def owner_guard(identity: Identity, owner_field: str = "owner_id") -> Callable[[object], None]:
    """Store guard that lets the admin or the record's owner through."""

    def guard(resource: object) -> None:
        ensure_can_modify(getattr(resource, owner_field), identity)

    return guard


def require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        logger.warning("forbidden: %s attempted an admin-only operation", identity.id)
        raise Forbidden("Admin only")


def ensure_inventory_update_allowed(fields: dict, identity: Identity) -> None:
    # Anyone may record consumption; catalogue fields stay with the admin.
    if identity.is_admin:
        return
    if set(fields) - INVENTORY_QTY_FIELDS:
        logger.warning("forbidden: %s attempted to edit inventory fields %s", identity.id, sorted(fields))
        raise Forbidden("Only quantity may be changed by non-admin users")


def report_visible_to(report, identity: Identity) -> bool:
    return identity.is_admin or report.owner_id == identity.id


def handoff_assigned_to(handoff, identity: Identity) -> bool:
    """Free-text assignment match: exact, case-sensitive name equality.

    ``assigned_to`` is a display name, not a user id. Swap this predicate for
    an id join if assignment ever becomes a real reference.
    """
    return bool(handoff.assigned_to) and handoff.assigned_to == identity.name


def handoff_visible_to(handoff, identity: Identity) -> bool:
    return identity.is_admin or handoff.owner_id == identity.id or handoff_assigned_to(handoff, identity)


def ensure_visible(visible: bool) -> None:
    if not visible:
        raise Forbidden("Forbidden")
