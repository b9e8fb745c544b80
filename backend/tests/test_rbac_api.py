"""Tests pour api/rbac_views.py et l'administration des comptes"""
import pytest
from django.urls import reverse
from rest_framework import status

from core.rbac.session import SessionContext
from identity.models import (
    ActivityLog,
    CustomRole,
    Notification,
    Permission,
    Profile,
    RolePermissionGrant,
    UserRoleAssignment,
)


def permission_id(module, action):
    return str(Permission.objects.get(module=module, action=action).pk)


@pytest.mark.django_db
class TestUserAdministration:
    def test_employee_cannot_list_users(self, client_for, employee):
        response = client_for(employee).get("/api/users/")
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert "error" in response.json()

    def test_manager_lists_and_searches(self, client_for, make_user, employee):
        manager = make_user("mike@example.com", role="manager", full_name="Mike Boss")
        response = client_for(manager).get("/api/users/", {"search": "stone"})
        assert response.status_code == status.HTTP_200_OK
        results = response.json()["results"]
        assert [row["email"] for row in results] == ["emma@example.com"]
        assert results[0]["role"] == {"type": "system", "value": "employee"}

    def test_edit_by_other_user_notifies(self, client_for, admin_user, employee):
        response = client_for(admin_user).patch(
            f"/api/users/{employee.pk}/", {"department": "Sales"}
        )
        assert response.status_code == status.HTTP_200_OK
        assert Profile.objects.get(user=employee).department == "Sales"
        log = ActivityLog.objects.get(user=employee, action_type="user_updated")
        assert log.metadata == {"fields": ["department"]}
        assert Notification.objects.filter(user=employee, title="Account updated").exists()

    def test_promotion_is_logged(self, client_for, admin_user, employee):
        response = client_for(admin_user).put(
            f"/api/users/{employee.pk}/role/",
            {"role": {"type": "system", "value": "manager"}},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "previous": {"type": "system", "value": "employee"},
            "role": {"type": "system", "value": "manager"},
        }
        assert UserRoleAssignment.objects.get(user=employee).role == "manager"

        log = ActivityLog.objects.get(user=employee, action_type="role_changed")
        assert log.metadata == {
            "old_role": "employee",
            "new_role": "manager",
            "change_type": "promoted",
        }
        assert log.performed_by == admin_user
        assert Notification.objects.filter(user=employee, title="Role updated").exists()
        assert SessionContext(user_id=employee.pk).labels == ("manager",)

    def test_demotion_is_logged(self, client_for, admin_user, make_user):
        hr = make_user("helen@example.com", role="hr")
        client_for(admin_user).put(
            f"/api/users/{hr.pk}/role/", {"role": {"type": "system", "value": "employee"}}
        )
        log = ActivityLog.objects.get(user=hr, action_type="role_changed")
        assert log.metadata["change_type"] == "demoted"

    def test_admin_cannot_grant_super_admin(self, client_for, admin_user, employee):
        response = client_for(admin_user).put(
            f"/api/users/{employee.pk}/role/",
            {"role": {"type": "system", "value": "super_admin"}},
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert UserRoleAssignment.objects.get(user=employee).role == "employee"

    def test_super_admin_grants_super_admin(self, client_for, super_admin, employee):
        response = client_for(super_admin).put(
            f"/api/users/{employee.pk}/role/",
            {"role": {"type": "system", "value": "super_admin"}},
        )
        assert response.status_code == status.HTTP_200_OK

    def test_cannot_change_own_role(self, client_for, admin_user):
        response = client_for(admin_user).put(
            f"/api/users/{admin_user.pk}/role/",
            {"role": {"type": "system", "value": "hr"}},
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "You cannot change your own role"

    def test_assign_custom_role(self, client_for, admin_user, employee):
        role = CustomRole.objects.create(name="Auditor")
        response = client_for(admin_user).put(
            f"/api/users/{employee.pk}/role/",
            {"role": {"type": "custom", "id": str(role.pk)}},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["role"]["name"] == "Auditor"
        assignment = UserRoleAssignment.objects.get(user=employee)
        assert assignment.role is None
        assert assignment.custom_role == role

    def test_invalid_role_payload(self, client_for, admin_user, employee):
        response = client_for(admin_user).put(
            f"/api/users/{employee.pk}/role/", {"role": "admin"}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invalid input"

    def test_deactivate(self, client_for, admin_user, employee):
        response = client_for(admin_user).post(f"/api/users/{employee.pk}/deactivate/")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["is_active"] is False
        assert ActivityLog.objects.filter(
            user=employee, action_type="user_status_changed"
        ).exists()

    def test_manager_cannot_deactivate(self, client_for, make_user, employee):
        manager = make_user("mike@example.com", role="manager")
        response = client_for(manager).post(f"/api/users/{employee.pk}/deactivate/")
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Profile.objects.get(user=employee).is_active

    def test_deactivation_revokes_open_sessions(self, client_for, admin_user, employee):
        """Un jeton émis avant la désactivation n'ouvre plus aucune route."""
        client = client_for(employee)
        assert client.get("/api/me/authorization/").status_code == status.HTTP_200_OK

        response = client_for(admin_user).post(f"/api/users/{employee.pk}/deactivate/")
        assert response.status_code == status.HTTP_200_OK

        refreshed = client.post("/api/auth/refresh-session/")
        assert refreshed.status_code == status.HTTP_401_UNAUTHORIZED
        assert refreshed.json()["error"] == "Invalid token"
        assert client.get("/api/me/authorization/").status_code == (
            status.HTTP_401_UNAUTHORIZED
        )
        assert client.get("/api/notifications/").status_code == (
            status.HTTP_401_UNAUTHORIZED
        )
        update = client.post(
            "/api/update-email/",
            {"userId": employee.pk, "oldEmail": employee.email, "newEmail": "e@example.com"},
        )
        assert update.json() == {"success": False, "error": "Invalid token"}


@pytest.mark.django_db
class TestCustomRoles:
    def test_admin_can_read_but_not_write(self, client_for, admin_user):
        client = client_for(admin_user)
        assert client.get("/api/custom-roles/").status_code == status.HTTP_200_OK
        response = client.post("/api/custom-roles/", {"name": "Auditor"})
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not CustomRole.objects.exists()

    def test_employee_cannot_read(self, client_for, employee):
        response = client_for(employee).get("/api/custom-roles/")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_super_admin_creates_role_with_permissions(self, client_for, super_admin):
        response = client_for(super_admin).post(
            "/api/custom-roles/",
            {
                "name": "Auditor",
                "description": "Reads the activity log",
                "permissionIds": [permission_id("activity_logs", "view")],
            },
        )
        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["name"] == "Auditor"
        assert body["permissions"] == [{"module": "activity_logs", "action": "view"}]
        assert ActivityLog.objects.filter(action_type="custom_role_created").exists()

    @pytest.mark.parametrize("name", ["admin", "Super_Admin"])
    def test_system_role_names_are_reserved(self, client_for, super_admin, name):
        response = client_for(super_admin).post("/api/custom-roles/", {"name": name})
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_duplicate_name(self, client_for, super_admin):
        CustomRole.objects.create(name="Auditor")
        response = client_for(super_admin).post("/api/custom-roles/", {"name": "auditor"})
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "A role with this name already exists"

    def test_update_replaces_permissions(self, client_for, super_admin):
        role = CustomRole.objects.create(name="Auditor")
        response = client_for(super_admin).put(
            f"/api/custom-roles/{role.pk}/permissions/",
            {
                "permissionIds": [
                    permission_id("activity_logs", "view"),
                    permission_id("users", "view"),
                ]
            },
        )
        assert response.status_code == status.HTTP_200_OK
        modules = sorted(p["module"] for p in response.json()["permissions"])
        assert modules == ["activity_logs", "users"]

        response = client_for(super_admin).put(
            f"/api/custom-roles/{role.pk}/permissions/",
            {"permissionIds": [permission_id("users", "view")]},
        )
        assert RolePermissionGrant.objects.filter(custom_role=role).count() == 1

    def test_unknown_permission_id(self, client_for, super_admin):
        role = CustomRole.objects.create(name="Auditor")
        response = client_for(super_admin).put(
            f"/api/custom-roles/{role.pk}/permissions/",
            {"permissionIds": ["00000000-0000-0000-0000-000000000000"]},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_assigned_role_cannot_be_deleted(self, client_for, super_admin, make_user):
        role = CustomRole.objects.create(name="Auditor")
        make_user("audit@example.com", custom_role=role)
        response = client_for(super_admin).delete(f"/api/custom-roles/{role.pk}/")
        assert response.status_code == status.HTTP_409_CONFLICT
        assert CustomRole.objects.filter(pk=role.pk).exists()

    def test_delete_unassigned_role(self, client_for, super_admin):
        role = CustomRole.objects.create(name="Auditor")
        response = client_for(super_admin).delete(f"/api/custom-roles/{role.pk}/")
        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not CustomRole.objects.filter(pk=role.pk).exists()


@pytest.mark.django_db
class TestPermissionMatrix:
    def test_catalog(self, client_for, admin_user):
        response = client_for(admin_user).get("/api/permissions/")
        assert response.status_code == status.HTTP_200_OK
        pairs = {(p["module"], p["action"]) for p in response.json()}
        assert ("rbac", "manage") in pairs
        assert ("users", "delete") in pairs

    def test_catalog_needs_rbac_view(self, client_for, employee):
        response = client_for(employee).get("/api/permissions/")
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Forbidden: 'rbac.view' permission required"}

    def test_role_list(self, client_for, admin_user, employee):
        CustomRole.objects.create(name="Auditor")
        roles = client_for(admin_user).get("/api/roles/").json()
        system = {r["value"]: r for r in roles if r["type"] == "system"}
        assert set(system) == {"super_admin", "admin", "hr", "manager", "employee"}
        assert system["employee"]["label"] == "User"
        assert system["employee"]["userCount"] == 1
        assert [r["label"] for r in roles if r["type"] == "custom"] == ["Auditor"]

    def test_edit_system_role_grants(self, client_for, admin_user, make_user):
        manager = make_user("mike@example.com", role="manager")
        assert not SessionContext(user_id=manager.pk).gate.has_permission(
            "activity_logs", "view"
        )

        response = client_for(admin_user).put(
            "/api/roles/system/manager/permissions/",
            {
                "permissionIds": [
                    permission_id("dashboard", "view"),
                    permission_id("activity_logs", "view"),
                ]
            },
        )
        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()["permissions"]) == 2
        assert SessionContext(user_id=manager.pk).gate.has_permission(
            "activity_logs", "view"
        )
        assert not SessionContext(user_id=manager.pk).gate.has_permission("users", "view")
        assert ActivityLog.objects.filter(action_type="permission_updated").exists()

    def test_unknown_system_role(self, client_for, admin_user):
        response = client_for(admin_user).get("/api/roles/system/owner/permissions/")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_system_role_grants_need_rbac_view(self, client_for, make_user):
        hr = make_user("hank@example.com", role="hr")
        response = client_for(hr).get("/api/roles/system/manager/permissions/")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_system_role_grants_edit_needs_rbac_edit(self, client_for, make_user):
        auditor_role = CustomRole.objects.create(name="Auditor")
        RolePermissionGrant.objects.create(
            custom_role=auditor_role,
            permission=Permission.objects.get(module="rbac", action="view"),
        )
        auditor = make_user("audrey@example.com", custom_role=auditor_role)
        client = client_for(auditor)
        url = "/api/roles/system/manager/permissions/"

        assert client.get(url).status_code == status.HTTP_200_OK
        response = client.put(url, {"permissionIds": [permission_id("users", "delete")]})
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not RolePermissionGrant.objects.filter(
            role="manager", permission__module="users", permission__action="delete"
        ).exists()


class TestUrlResolution:
    def test_user_actions_resolve(self):
        assert reverse("users-deactivate", kwargs={"user_id": 7}) == "/api/users/7/deactivate/"
        assert reverse("users-role", kwargs={"user_id": 7}) == "/api/users/7/role/"

    def test_handlers_resolve(self):
        for name in ("check-user", "send-otp", "verify-otp", "create-user", "delete-user"):
            assert reverse(name).startswith("/api/")


@pytest.mark.django_db
class TestActivityAndNotifications:
    def test_employee_sees_own_rows_only(self, client_for, employee, make_user):
        other = make_user("other@example.com")
        ActivityLog.objects.create(user=employee, action_type="login", description="in")
        ActivityLog.objects.create(user=other, action_type="login", description="in")

        rows = client_for(employee).get("/api/activity-logs/").json()["results"]
        assert len(rows) == 1
        assert rows[0]["user"] == employee.pk

    def test_admin_sees_all_and_filters(self, client_for, admin_user, employee):
        ActivityLog.objects.create(user=employee, action_type="login", description="in")
        ActivityLog.objects.create(
            user=employee, action_type="signup", description="up", module="auth"
        )
        rows = client_for(admin_user).get(
            "/api/activity-logs/", {"action_type": "signup"}
        ).json()["results"]
        assert [row["action_type"] for row in rows] == ["signup"]

    def test_logs_are_newest_first(self, client_for, admin_user, employee):
        first = ActivityLog.objects.create(user=employee, action_type="login", description="1")
        second = ActivityLog.objects.create(user=employee, action_type="logout", description="2")
        rows = client_for(admin_user).get("/api/activity-logs/").json()["results"]
        ids = [row["id"] for row in rows]
        assert ids.index(second.pk) < ids.index(first.pk)

    def test_notifications_are_private(self, client_for, employee, make_user):
        other = make_user("other@example.com")
        mine = Notification.objects.create(user=employee, title="Hi", message="Hello")
        Notification.objects.create(user=other, title="Other", message="Nope")
        client = client_for(employee)

        rows = client.get("/api/notifications/").json()["results"]
        assert [row["title"] for row in rows] == ["Hi"]

        response = client.post(f"/api/notifications/{mine.pk}/read/")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["read"] is True

    def test_cannot_mark_someone_elses_notification(self, client_for, employee, make_user):
        other = make_user("other@example.com")
        theirs = Notification.objects.create(user=other, title="Other", message="Nope")
        response = client_for(employee).post(f"/api/notifications/{theirs.pk}/read/")
        assert response.status_code == status.HTTP_404_NOT_FOUND
