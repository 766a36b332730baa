import pytest
from django.urls import resolve
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from baycation.users.models import User
from tests.factories import TEST_PASSWORD

pytestmark = pytest.mark.django_db


def obtain_tokens(client, username: str, password: str) -> tuple[str, str]:
    r = client.post(
        "/api/v1/auth/jwt/create/",
        {"username": username, "password": password},
        format="json",
    )
    assert r.status_code == status.HTTP_200_OK, r.content
    return r.data["access"], r.data["refresh"]


def test_user_routes():
    assert reverse("api_v1:user-list") == "/api/v1/users/"
    assert resolve("/api/v1/users/me/").view_name == "api_v1:user-me"


def test_me_with_a_bearer_token(user: User):
    client = APIClient()
    access, _ = obtain_tokens(client, user.username, TEST_PASSWORD)

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    r = client.get("/api/v1/users/me/")
    assert r.status_code == status.HTTP_200_OK
    assert r.data["id"] == user.pk
    assert r.data["is_online"] is False


def test_presence_fields_are_read_only(user: User):
    client = APIClient()
    client.force_authenticate(user=user)
    r = client.get(f"/api/v1/users/{user.pk}/")
    assert r.status_code == status.HTTP_200_OK
    assert set(r.data) >= {"is_online", "last_seen", "display_name"}


def test_anonymous_requests_are_refused():
    assert APIClient().get("/api/v1/users/me/").status_code == 401


def test_jwt_verify_endpoint(user: User):
    client = APIClient()
    access, _ = obtain_tokens(client, user.username, TEST_PASSWORD)

    r = client.post("/api/v1/auth/jwt/verify/", {"token": access}, format="json")
    assert r.status_code == status.HTTP_200_OK

    bad = access[:-2] + "ab"
    r = client.post("/api/v1/auth/jwt/verify/", {"token": bad}, format="json")
    assert r.status_code == status.HTTP_401_UNAUTHORIZED
