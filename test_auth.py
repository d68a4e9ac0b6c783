from datetime import timedelta

from jose import jwt

from auth_utils import create_access_token
from fakes import create_random_user, auth_headers
from models import User, AuthToken, LifecycleState, utcnow


def login(client, email, password="testpassword123", **extra):
    return client.post("/auth/login", json={"email": email, "password": password, **extra})


def test_register_returns_user_and_token(client):
    response = client.post("/auth/register", json={
        "name": "Anna", "email": "  Anna@Example.com ", "password": "testpassword123",
    })
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "anna@example.com"
    assert data["user"]["preferred_language"] == "en"
    assert data["token_type"] == "bearer"
    assert data["token"]
    assert "hashed_password" not in data["user"]

    me = client.get("/auth/me", headers=auth_headers(data["token"]))
    assert me.status_code == 200
    assert me.json()["id"] == data["user"]["id"]


def test_register_uses_request_locale_as_default_language(client):
    response = client.post("/auth/register", json={
        "name": "Jean", "email": "jean@example.com", "password": "testpassword123",
    }, headers={"Accept-Language": "fr-FR,fr;q=0.9"})
    assert response.json()["user"]["preferred_language"] == "fr"
    assert response.json()["message"] == "Inscription réussie"


def test_duplicate_email_is_rejected(client):
    _, email, _ = create_random_user(client)
    response = client.post("/auth/register", json={"name": "Copy", "email": email.upper(), "password": "testpassword123"})
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "USER_ALREADY_EXISTS"


def test_register_validation(client):
    response = client.post("/auth/register", json={"name": "X", "email": "no-at-sign", "password": "short"})
    assert response.status_code == 422
    errors = response.json()["error"]["errors"]
    assert "email" in errors
    assert "password" in errors


def test_password_is_hashed(client, db):
    _, email, _ = create_random_user(client)
    user = db.query(User).filter(User.email == email).first()
    assert user.hashed_password != "testpassword123"
    assert user.hashed_password.startswith("$2")


def test_wrong_password_and_unknown_email_look_the_same(client):
    _, email, _ = create_random_user(client)
    wrong_password = login(client, email, "wrongpassword")
    unknown_email = login(client, "nobody@example.com", "wrongpassword")

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_login_is_case_insensitive_on_email(client):
    _, email, _ = create_random_user(client)
    response = login(client, email.upper())
    assert response.status_code == 200


def test_login_without_remember_revokes_other_tokens(client, db):
    first_token, email, user_id = create_random_user(client)
    response = login(client, email)
    assert response.status_code == 200
    new_token = response.json()["token"]

    assert client.get("/auth/me", headers=auth_headers(first_token)).status_code == 401
    assert client.get("/auth/me", headers=auth_headers(new_token)).status_code == 200
    assert db.query(AuthToken).filter(AuthToken.user_id == user_id).count() == 1


def test_login_with_remember_keeps_sessions_and_lasts_longer(client):
    first_token, email, _ = create_random_user(client)
    short = login(client, email).json()
    remembered = login(client, email, remember=True).json()

    assert client.get("/auth/me", headers=auth_headers(short["token"])).status_code == 200
    assert client.get("/auth/me", headers=auth_headers(remembered["token"])).status_code == 200
    assert client.get("/auth/me", headers=auth_headers(first_token)).status_code == 401
    assert remembered["expires_at"] > short["expires_at"]


def test_refresh_replaces_token_with_same_expiry(client):
    token, _, _ = create_random_user(client)
    before = client.get("/user", headers=auth_headers(token))
    assert before.status_code == 200

    response = client.post("/auth/refresh", headers=auth_headers(token))
    assert response.status_code == 200
    refreshed = response.json()
    assert refreshed["token"] != token

    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 401
    assert client.get("/auth/me", headers=auth_headers(refreshed["token"])).status_code == 200

    again = client.post("/auth/refresh", headers=auth_headers(refreshed["token"])).json()
    assert again["expires_at"] == refreshed["expires_at"]


def test_logout_revokes_only_current_token(client):
    _, email, _ = create_random_user(client)
    a = login(client, email, remember=True).json()["token"]
    b = login(client, email, remember=True).json()["token"]

    response = client.post("/auth/logout", headers=auth_headers(a))
    assert response.status_code == 200
    assert client.get("/auth/me", headers=auth_headers(a)).status_code == 401
    assert client.get("/auth/me", headers=auth_headers(b)).status_code == 200


def test_logout_all_revokes_everything(client):
    _, email, _ = create_random_user(client)
    a = login(client, email, remember=True).json()["token"]
    b = login(client, email, remember=True).json()["token"]

    response = client.post("/auth/logout-all", headers=auth_headers(a))
    assert response.status_code == 200
    assert client.get("/auth/me", headers=auth_headers(a)).status_code == 401
    assert client.get("/auth/me", headers=auth_headers(b)).status_code == 401


def test_missing_or_garbage_token(client):
    response = client.get("/tasks")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    assert client.get("/tasks", headers=auth_headers("not-a-jwt")).status_code == 401


def test_expired_token_is_rejected(client, db):
    _, _, user_id = create_random_user(client)
    expired_at = utcnow() - timedelta(minutes=5)
    row = AuthToken(id="expired-token", user_id=user_id, name="auth_token", expires_at=expired_at)
    db.add(row)
    db.commit()
    token = create_access_token(user_id, row.id, utcnow() + timedelta(hours=1))
    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 401


def test_token_of_other_user_id_is_rejected(client):
    token_a, _, user_a = create_random_user(client)
    _, _, user_b = create_random_user(client)
    # gültiger jti, aber falscher user_id-Claim
    claims = jwt.get_unverified_claims(token_a)
    forged = create_access_token(user_b, claims["jti"], utcnow() + timedelta(hours=1))
    assert user_a != user_b
    assert client.get("/auth/me", headers=auth_headers(forged)).status_code == 401


# --- /user ---

def test_user_profile_and_preferences(client, fake_redis):
    token, _, user_id = create_random_user(client, preferred_language="en")
    headers = auth_headers(token)

    profile = client.get("/user", headers=headers).json()
    assert profile["preferences"]["language"] == "en"
    assert profile["preferences"]["notifications"]["task_created"] is True
    assert fake_redis.store[f"test:user_locale:{user_id}"] == "en"

    response = client.put("/user/preferences", json={
        "preferred_language": "de",
        "timezone": "Europe/Berlin",
        "notification_preferences": {"task_created": False},
    }, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Einstellungen erfolgreich aktualisiert"
    assert data["preferences"]["language"] == "de"
    assert data["preferences"]["timezone"] == "Europe/Berlin"
    assert data["preferences"]["notifications"]["task_created"] is False
    assert data["preferences"]["notifications"]["task_completed"] is True
    assert f"test:user_locale:{user_id}" not in fake_redis.store

    assert client.get("/locale", headers=headers).json()["current_locale"] == "de"


def test_preferences_reject_unsupported_language(client):
    token, _, _ = create_random_user(client)
    response = client.put("/user/preferences", json={"preferred_language": "es"}, headers=auth_headers(token))
    assert response.status_code == 422


def test_deactivated_account_cannot_log_in(client, db):
    token, email, user_id = create_random_user(client)
    response = client.delete("/user", headers=auth_headers(token))
    assert response.status_code == 200

    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 401
    user = db.get(User, user_id)
    assert user.state == LifecycleState.DELETED
    assert user.deleted_at is not None

    response = login(client, email)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCOUNT_DEACTIVATED"

    # falsches Passwort verrät den Status nicht
    assert login(client, email, "wrongpassword").status_code == 401


def test_deactivated_email_cannot_register_again(client):
    token, email, _ = create_random_user(client)
    client.delete("/user", headers=auth_headers(token))
    response = client.post("/auth/register", json={"name": "Again", "email": email, "password": "testpassword123"})
    assert response.status_code == 409
