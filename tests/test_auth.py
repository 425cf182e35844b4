from fastapi import status

from addressbook import crud, seed
from addressbook.auth import ACCESS_COOKIE, get_password_hash, verify_password
from addressbook.core import get_settings


def test_password_hashing_roundtrip():
    password = "secret123"
    hashed = get_password_hash(password)
    assert hashed != password
    assert verify_password(password, hashed)


def test_login_sets_cookie_and_opens_contacts(client, make_user):
    user = make_user()
    token = client.csrf_token()
    response = client.post(
        "/auth/login",
        data={"email": user.email, "password": "secret123", "csrf_token": token},
    )
    assert response.status_code == status.HTTP_303_SEE_OTHER
    assert response.headers["location"] == "/contacts"
    assert ACCESS_COOKIE in client.cookies

    contacts_page = client.get("/contacts")
    assert contacts_page.status_code == status.HTTP_200_OK


def test_login_with_wrong_password_rerenders_form(client, make_user):
    user = make_user()
    token = client.csrf_token()
    response = client.post(
        "/auth/login",
        data={"email": user.email, "password": "wrong-one", "csrf_token": token},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Invalid credentials" in response.text
    assert ACCESS_COOKIE not in client.cookies


def test_anonymous_user_is_sent_to_login(client):
    response = client.get("/contacts")
    assert response.status_code == status.HTTP_303_SEE_OTHER
    assert response.headers["location"] == "/auth/login"


def test_post_without_csrf_token_is_rejected(client, make_user):
    client.login_as(make_user())
    response = client.post("/categories/create", data={"name": "Family"})
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_register_creates_user_and_signs_in(client, db_session):
    token = client.csrf_token()
    response = client.post(
        "/auth/register",
        data={
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "password": "engine42",
            "csrf_token": token,
        },
    )
    assert response.status_code == status.HTTP_303_SEE_OTHER
    assert ACCESS_COOKIE in client.cookies
    user = crud.get_user_by_email(db_session, "ada@example.com")
    assert user is not None
    assert verify_password("engine42", user.hashed_password)


def test_register_rejects_duplicate_email(client, make_user):
    user = make_user()
    token = client.csrf_token()
    response = client.post(
        "/auth/register",
        data={
            "first_name": "Again",
            "last_name": "User",
            "email": user.email,
            "password": "secret123",
            "csrf_token": token,
        },
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "already registered" in response.text


def test_logout_clears_cookie(client, make_user):
    client.login_as(make_user())
    token = client.csrf_token()
    response = client.post("/auth/logout", data={"csrf_token": token})
    assert response.status_code == status.HTTP_303_SEE_OTHER
    assert ACCESS_COOKIE not in client.cookies


def test_seed_demo_user_is_idempotent(db_session):
    settings = get_settings()
    first = seed.seed_demo_user(db_session)
    second = seed.seed_demo_user(db_session)

    assert first.id == second.id
    assert first.email == settings.DEMO_USER_EMAIL
    assert first.email_confirmed
    assert verify_password(settings.DEMO_USER_PASSWORD, first.hashed_password)
