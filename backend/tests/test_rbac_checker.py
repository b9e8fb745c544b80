"""Tests pour core/rbac/roles.py et core/rbac/checker.py"""
import uuid

import pytest

from core.rbac.checker import ActionDecision, AuthorizationGate
from core.rbac.resolver import PermissionSet
from core.rbac.roles import (
    CustomRoleRef,
    SystemRole,
    SystemRoleRef,
    parse_role_ref,
    role_rank,
    suppress_default_role,
    system_ref,
)


class StubContext:
    """Contexte minimal : rôles et permissions fixés à la main."""

    def __init__(self, roles, pairs=(), unrestricted=False):
        self.roles = tuple(roles)
        self.permissions = PermissionSet(pairs=frozenset(pairs), unrestricted=unrestricted)

    @property
    def labels(self):
        return tuple(ref.label for ref in self.roles)


class TestRoleRefs:
    def test_parse_system_role(self):
        ref = parse_role_ref({"type": "system", "value": "hr"})
        assert ref == SystemRoleRef(SystemRole.HR)
        assert ref.as_dict() == {"type": "system", "value": "hr"}

    def test_parse_custom_role(self):
        role_id = uuid.uuid4()
        ref = parse_role_ref({"type": "custom", "id": str(role_id)})
        assert isinstance(ref, CustomRoleRef)
        assert ref.id == role_id

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "system", "value": "owner"},
            {"type": "custom", "id": "not-a-uuid"},
            {"type": "group", "value": "admin"},
            {},
        ],
    )
    def test_parse_rejects_unknown_shapes(self, payload):
        with pytest.raises(ValueError):
            parse_role_ref(payload)

    def test_employee_label_differs_from_value(self):
        """Le rôle par défaut s'affiche « User » mais reste `employee`."""
        assert SystemRole.EMPLOYEE.label == "User"
        assert system_ref("employee").label == "employee"

    def test_rank_orders_system_roles(self):
        assert role_rank(system_ref("employee")) < role_rank(system_ref("manager"))
        assert role_rank(system_ref("admin")) < role_rank(system_ref("super_admin"))


class TestSuppressDefaultRole:
    def test_employee_dropped_when_elevated_role_present(self):
        refs = [system_ref("employee"), system_ref("manager")]
        assert suppress_default_role(refs) == (system_ref("manager"),)

    def test_employee_kept_alone(self):
        assert suppress_default_role([system_ref("employee")]) == (system_ref("employee"),)

    def test_employee_kept_next_to_custom_role(self):
        custom = CustomRoleRef(id=uuid.uuid4(), name="Auditor")
        refs = [system_ref("employee"), custom]
        assert suppress_default_role(refs) == (system_ref("employee"), custom)

    def test_order_is_preserved(self):
        custom = CustomRoleRef(id=uuid.uuid4(), name="Auditor")
        refs = [custom, system_ref("employee"), system_ref("hr")]
        assert suppress_default_role(refs) == (custom, system_ref("hr"))


class TestAuthorizationGate:
    def test_super_admin_allows_everything(self):
        """Le super_admin passe même avec un ensemble de permissions vide."""
        gate = AuthorizationGate(StubContext([system_ref("super_admin")]))
        assert gate.has_permission("rbac", "manage")
        assert gate.has_permission("anything", "at_all")
        assert gate.is_admin()

    def test_permission_from_pairs(self):
        gate = AuthorizationGate(
            StubContext([system_ref("manager")], pairs=[("users", "view")])
        )
        assert gate.has_permission("users", "view")
        assert not gate.has_permission("users", "delete")
        assert not gate.is_admin()

    def test_has_role_accepts_several_candidates(self):
        gate = AuthorizationGate(StubContext([system_ref("hr")]))
        assert gate.has_role(SystemRole.ADMIN, SystemRole.HR)
        assert not gate.has_role(SystemRole.ADMIN)

    def test_custom_role_matched_by_name(self):
        gate = AuthorizationGate(
            StubContext([CustomRoleRef(id=uuid.uuid4(), name="Auditor")])
        )
        assert gate.has_role("Auditor")
        assert not gate.is_admin()

    def test_empty_context_denies(self):
        gate = AuthorizationGate(StubContext([]))
        assert not gate.has_permission("dashboard", "view")
        assert not gate.has_role(SystemRole.EMPLOYEE)

    def test_decision_reports_missing_role_first(self):
        gate = AuthorizationGate(StubContext([system_ref("manager")]))
        decision = gate.decision(module="users", action="delete", role="admin")
        assert decision == ActionDecision(allowed=False, reason="Role 'admin' required")

    def test_decision_reports_missing_permission(self):
        gate = AuthorizationGate(StubContext([system_ref("manager")]))
        decision = gate.decision(module="users", action="delete")
        assert not decision.allowed
        assert "users.delete" in decision.reason

    def test_decision_allowed(self):
        gate = AuthorizationGate(
            StubContext([system_ref("hr")], pairs=[("activity_logs", "view")])
        )
        assert gate.decision(module="activity_logs", action="view").allowed
