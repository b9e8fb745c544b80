"""Tests pour le changement d'email en deux vérifications"""
import pytest
from rest_framework import status

from identity.models import (
    ActivityLog,
    EmailChangeRequest,
    Notification,
    OtpVerification,
    Profile,
)

NEW_EMAIL = "emma.new@example.com"


def code_for(email):
    return (
        OtpVerification.objects.filter(email=email).order_by("-created_at").first().otp_code
    )


@pytest.mark.django_db
class TestEmailChangeFlow:
    def test_full_flow(self, employee, client_for, mailoutbox):
        client = client_for(employee)
        old_email = employee.email

        response = client.post("/api/email-change/request/", {"newEmail": NEW_EMAIL})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["sentTo"] == old_email

        response = client.post(
            "/api/email-change/verify-current/", {"otp": code_for(old_email)}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "success": True,
            "status": "pending_new",
            "sentTo": NEW_EMAIL,
        }

        response = client.post("/api/email-change/verify-new/", {"otp": code_for(NEW_EMAIL)})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == NEW_EMAIL

        employee.refresh_from_db()
        assert employee.email == NEW_EMAIL
        assert employee.username == NEW_EMAIL
        assert Profile.objects.get(user=employee).email == NEW_EMAIL
        assert EmailChangeRequest.objects.get(user=employee).status == "completed"

        log = ActivityLog.objects.get(user=employee, action_type="email_changed")
        assert log.metadata == {"old_email": old_email, "new_email": NEW_EMAIL}
        assert log.module == "profile"
        assert Notification.objects.filter(user=employee, title="Email updated").exists()

    def test_current_email_code_never_changes_profile(self, employee, client_for):
        """Valider le code de l'ancienne adresse n'altère pas le profil."""
        client = client_for(employee)
        old_email = employee.email
        client.post("/api/email-change/request/", {"newEmail": NEW_EMAIL})
        client.post("/api/email-change/verify-current/", {"otp": code_for(old_email)})

        employee.refresh_from_db()
        assert employee.email == old_email
        assert Profile.objects.get(user=employee).email == old_email

    def test_new_email_step_requires_current_step(self, employee, client_for):
        client = client_for(employee)
        client.post("/api/email-change/request/", {"newEmail": NEW_EMAIL})
        response = client.post("/api/email-change/verify-new/", {"otp": "123456"})
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "No pending email change request"

    def test_address_taken_by_another_account(self, employee, make_user, client_for):
        make_user(NEW_EMAIL)
        response = client_for(employee).post(
            "/api/email-change/request/", {"newEmail": NEW_EMAIL}
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == (
            "This email is already in use by another account"
        )

    def test_same_address_is_rejected(self, employee, client_for):
        response = client_for(employee).post(
            "/api/email-change/request/", {"newEmail": employee.email}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_new_request_cancels_previous(self, employee, client_for):
        client = client_for(employee)
        client.post("/api/email-change/request/", {"newEmail": NEW_EMAIL})
        client.post("/api/email-change/request/", {"newEmail": "emma.other@example.com"})
        statuses = sorted(
            EmailChangeRequest.objects.filter(user=employee).values_list("status", flat=True)
        )
        assert statuses == ["cancelled", "pending_current"]

    def test_requires_session(self, api_client):
        response = api_client.post("/api/email-change/request/", {"newEmail": NEW_EMAIL})
        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        )
