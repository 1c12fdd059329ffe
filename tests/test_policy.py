from types import SimpleNamespace

import pytest

from cmms.errors import Forbidden
from cmms.policy import (
    can_modify,
    ensure_inventory_update_allowed,
    handoff_assigned_to,
    handoff_visible_to,
    owner_guard,
    report_visible_to,
    require_admin,
)
from cmms.security import Identity

ADMIN = Identity(id="u_admin", name="Admin", email="admin@cmms.local", role="admin")
JO = Identity(id="u_jo", name="Jo", email="jo@cmms.local", role="tech")
SAM = Identity(id="u_sam", name="Sam", email="sam@cmms.local", role="tech")


def test_can_modify_admin_or_owner_only() -> None:
    assert can_modify("u_jo", JO) is True
    assert can_modify("u_jo", ADMIN) is True
    assert can_modify("u_jo", SAM) is False
    assert can_modify("", SAM) is False


def test_owner_guard_raises_forbidden() -> None:
    record = SimpleNamespace(owner_id="u_jo", author_id="u_sam")
    owner_guard(JO)(record)
    owner_guard(ADMIN)(record)
    with pytest.raises(Forbidden):
        owner_guard(SAM)(record)
    owner_guard(SAM, owner_field="author_id")(record)


def test_require_admin() -> None:
    require_admin(ADMIN)
    with pytest.raises(Forbidden):
        require_admin(JO)


def test_inventory_quantity_is_open_to_everyone() -> None:
    ensure_inventory_update_allowed({"qty": 3}, JO)
    ensure_inventory_update_allowed({"qty": 3, "min": 1, "name": "Clamp"}, ADMIN)
    with pytest.raises(Forbidden):
        ensure_inventory_update_allowed({"qty": 3, "sku": "X"}, JO)


def test_report_visibility() -> None:
    report = SimpleNamespace(owner_id="u_jo")
    assert report_visible_to(report, JO)
    assert report_visible_to(report, ADMIN)
    assert not report_visible_to(report, SAM)


def test_handoff_assignment_is_exact_name_match() -> None:
    assert handoff_assigned_to(SimpleNamespace(assigned_to="Sam"), SAM)
    assert not handoff_assigned_to(SimpleNamespace(assigned_to="sam"), SAM)
    assert not handoff_assigned_to(SimpleNamespace(assigned_to=""), SAM)


def test_handoff_visibility() -> None:
    handoff = SimpleNamespace(owner_id="u_jo", assigned_to="Sam")
    assert handoff_visible_to(handoff, JO)
    assert handoff_visible_to(handoff, SAM)
    assert handoff_visible_to(handoff, ADMIN)
    other = Identity(id="u_kim", name="Kim", email="kim@cmms.local", role="tech")
    assert not handoff_visible_to(handoff, other)
