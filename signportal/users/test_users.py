import logging
from datetime import timedelta

from sqlalchemy import select

from signportal.core.jwt import create_access_token
from signportal.testing_dependencies import auth_headers, client, db_session, docuseal_client
from signportal.users.models import User
from signportal.users.repository import UserRepository


def test_ping_api(client):
    response = client.get("/")
    logging.info(response.json())
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_user_requires_session(client):
    response = client.get("/user")
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized - please sign in"


def test_get_user_creates_user_on_first_sign_in(client, db_session):
    response = client.get("/user", headers=auth_headers("Jane@Example.com", "Jane Doe"))
    assert response.status_code == 200
    body = response.json()
    assert body["email"].lower() == "jane@example.com"
    assert body["name"] == "Jane Doe"

    # Second sign-in with a differently cased email resolves to the same row
    response = client.get("/user", headers=auth_headers("jane@example.com", "Jane D."))
    assert response.status_code == 200
    assert response.json()["id"] == body["id"]
    assert response.json()["name"] == "Jane D."

    users = db_session.execute(select(User)).scalars().all()
    assert len(users) == 1


def test_invalid_token_is_rejected(client):
    response = client.get("/user", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid authentication credentials."


def test_expired_token_is_rejected(client):
    token = create_access_token({"sub": "late@example.com"}, expires_delta=timedelta(minutes=-5))
    response = client.get("/user", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


def test_token_without_email_is_rejected(client, db_session):
    token = create_access_token({"sub": "user-1234"})
    response = client.get("/user", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert db_session.execute(select(User)).scalars().first() is None


def test_get_or_create_recovers_from_concurrent_sign_in(db_session, monkeypatch):
    db_session.add(User(email="race@example.com", name="Racer"))
    db_session.commit()

    original_lookup = UserRepository.get_user_by_email
    lookups = []

    def lookup_missing_first_time(self, email):
        # The first lookup runs before the other request's insert is visible
        lookups.append(email)
        if len(lookups) == 1:
            return None
        return original_lookup(self, email)

    monkeypatch.setattr(UserRepository, "get_user_by_email", lookup_missing_first_time)

    user = UserRepository(db_session).get_or_create("race@example.com", name="Racer")
    assert user.email == "race@example.com"
    assert len(lookups) == 2
    assert len(db_session.execute(select(User)).scalars().all()) == 1
