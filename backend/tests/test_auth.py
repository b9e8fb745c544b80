"""Tests pour api/auth.py"""
import pytest
from rest_framework import status
from rest_framework_simplejwt.tokens import AccessToken

from identity.models import ActivityLog, Profile, UserRoleAssignment

DEFAULT_PASSWORD = "Passw0rd!23"


@pytest.mark.django_db
class TestObtainToken:
    """Tests pour l'endpoint obtain_token"""

    def test_missing_password(self, api_client):
        response = api_client.post("/api/token/", {"email": "emma@example.com"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["details"] == "Password is required"

    def test_valid_credentials(self, api_client, employee):
        response = api_client.post(
            "/api/token/", {"email": "Emma@Example.com", "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["roles"] == ["employee"]

        access = AccessToken(body["access"])
        assert str(access["user_id"]) == str(employee.pk)
        assert access["roles"] == ["employee"]
        assert access["email"] == employee.email

        assert Profile.objects.get(user=employee).last_sign_in is not None
        assert ActivityLog.objects.filter(user=employee, action_type="login").exists()

    def test_wrong_password(self, api_client, employee):
        response = api_client.post(
            "/api/token/", {"email": employee.email, "password": "wrong-password"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Invalid login credentials"}
        log = ActivityLog.objects.get(action_type="failed_login")
        assert log.status == "failed"
        assert log.user == employee

    def test_unknown_account(self, api_client, db):
        response = api_client.post(
            "/api/token/", {"email": "ghost@example.com", "password": "whatever1"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_deactivated_profile_is_refused(self, api_client, make_user):
        """Profil désactivé : connexion refusée par défaut."""
        make_user("off@example.com", is_active=False)
        response = api_client.post(
            "/api/token/", {"email": "off@example.com", "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Account is deactivated"}

    def test_deactivated_profile_allowed_when_configured(
        self, api_client, make_user, settings
    ):
        settings.AUTH_BLOCK_INACTIVE_PROFILES = False
        make_user("off@example.com", is_active=False)
        response = api_client.post(
            "/api/token/", {"email": "off@example.com", "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == status.HTTP_200_OK

    def test_elevated_role_hides_employee(self, api_client, make_user):
        make_user("hr@example.com", role="hr")
        response = api_client.post(
            "/api/token/", {"email": "hr@example.com", "password": DEFAULT_PASSWORD}
        )
        assert response.json()["roles"] == ["hr"]


@pytest.mark.django_db
class TestRefreshSession:
    def test_refresh_picks_up_new_role(self, client_for, employee):
        client = client_for(employee)
        assert client.get("/api/me/authorization/").json()["roles"] == ["employee"]

        UserRoleAssignment.objects.filter(user=employee).update(role="manager")
        response = client.post("/api/auth/refresh-session/")
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["roles"] == ["manager"]
        assert {"module": "users", "action": "view"} in body["permissions"]
        assert body["unrestricted"] is False
        assert AccessToken(body["access"])["roles"] == ["manager"]

    def test_deactivated_profile_keeps_session_when_allowed(
        self, client_for, employee, settings
    ):
        settings.AUTH_BLOCK_INACTIVE_PROFILES = False
        Profile.objects.filter(user=employee).update(is_active=False)
        response = client_for(employee).post("/api/auth/refresh-session/")
        assert response.status_code == status.HTTP_200_OK

    def test_refresh_requires_token(self, api_client):
        response = api_client.post("/api/auth/refresh-session/")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestMyAuthorization:
    def test_employee(self, client_for, employee):
        body = client_for(employee).get("/api/me/authorization/").json()
        assert body["userId"] == employee.pk
        assert body["roles"] == ["employee"]
        assert {"module": "dashboard", "action": "view"} in body["permissions"]
        assert body["isAdmin"] is False
        assert body["unrestricted"] is False

    def test_super_admin(self, client_for, super_admin):
        body = client_for(super_admin).get("/api/me/authorization/").json()
        assert body["roles"] == ["super_admin"]
        assert body["unrestricted"] is True
        assert body["isAdmin"] is True

    def test_stale_until_refresh(self, client_for, employee):
        client = client_for(employee)
        client.get("/api/me/authorization/")
        UserRoleAssignment.objects.filter(user=employee).update(role="admin")
        assert client.get("/api/me/authorization/").json()["roles"] == ["employee"]
        assert client.get("/api/me/authorization/?refresh=1").json()["roles"] == ["admin"]
