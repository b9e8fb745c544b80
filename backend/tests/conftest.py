"""Fixtures partagées : comptes par rôle et clients authentifiés."""
import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from identity.models import Profile, UserRoleAssignment

DEFAULT_PASSWORD = "Passw0rd!23"


@pytest.fixture(autouse=True)
def _clear_rbac_cache():
    # Le cache locmem survit entre les tests et SQLite réutilise les ids.
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    """Fabrique de comptes : profil complété et rôle unique affecté."""

    def _make(
        email,
        *,
        role="employee",
        custom_role=None,
        password=DEFAULT_PASSWORD,
        full_name=None,
        is_active=True,
        **profile_fields,
    ):
        user = get_user_model().objects.create_user(
            username=email, email=email, password=password
        )
        Profile.objects.filter(user=user).update(
            full_name=full_name or email.split("@")[0].capitalize(),
            is_active=is_active,
            password_set=True,
            **profile_fields,
        )
        UserRoleAssignment.objects.filter(user=user).update(
            role=None if custom_role else role, custom_role=custom_role
        )
        return user

    return _make


@pytest.fixture
def bearer():
    def _bearer(user):
        return f"Bearer {AccessToken.for_user(user)}"

    return _bearer


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(bearer):
    """Client API authentifié avec le jeton d'accès de `user`."""

    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=bearer(user))
        return client

    return _client


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", role="admin", full_name="Ada Admin")


@pytest.fixture
def super_admin(make_user):
    return make_user("root@example.com", role="super_admin", full_name="Sam Root")


@pytest.fixture
def employee(make_user):
    return make_user("emma@example.com", full_name="Emma Stone", contact_number="555-0100")
