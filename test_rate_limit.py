import pytest

from errors import RateLimitedError
from fakes import create_random_user, auth_headers
from rate_limit import AuthRateLimiter


@pytest.fixture
def limiter():
    instance = AuthRateLimiter("memory://", limits={"login": "5/minute", "register": "3/minute"})
    yield instance
    instance.reset()


def test_sixth_login_attempt_is_blocked(limiter):
    for _ in range(5):
        limiter.check("login", "1.2.3.4", "a@example.com")
    with pytest.raises(RateLimitedError) as exc:
        limiter.check("login", "1.2.3.4", "a@example.com")
    assert 1 <= exc.value.retry_after <= 60
    assert exc.value.headers() == {"Retry-After": str(exc.value.retry_after)}


def test_keys_are_per_ip_and_email(limiter):
    for _ in range(5):
        limiter.check("login", "1.2.3.4", "a@example.com")
    limiter.check("login", "1.2.3.4", "b@example.com")
    limiter.check("login", "5.6.7.8", "a@example.com")
    # E-Mail wird normalisiert
    with pytest.raises(RateLimitedError):
        limiter.check("login", "1.2.3.4", " A@Example.com")


def test_clear_resets_counter(limiter):
    for _ in range(5):
        limiter.check("login", "1.2.3.4", "a@example.com")
    limiter.clear("login", "1.2.3.4", "a@example.com")
    limiter.check("login", "1.2.3.4", "a@example.com")


def test_unknown_endpoint_uses_default_limit(limiter):
    assert limiter.limit_for("refresh") is limiter.default
    assert limiter.limit_for("register").amount == 3


# --- HTTP ---

def test_login_throttled_after_five_failures(client):
    _, email, _ = create_random_user(client)
    for _ in range(5):
        response = client.post("/auth/login", json={"email": email, "password": "wrongpassword"})
        assert response.status_code == 401

    response = client.post("/auth/login", json={"email": email, "password": "testpassword123"})
    assert response.status_code == 429
    body = response.json()["error"]
    assert body["code"] == "TOO_MANY_ATTEMPTS"
    assert int(response.headers["retry-after"]) == body["retry_after"]
    assert str(body["retry_after"]) in body["message"]


def test_successful_login_clears_failures(client):
    _, email, _ = create_random_user(client)
    for _ in range(4):
        client.post("/auth/login", json={"email": email, "password": "wrongpassword"})
    assert client.post("/auth/login", json={"email": email, "password": "testpassword123"}).status_code == 200

    for _ in range(4):
        assert client.post("/auth/login", json={"email": email, "password": "wrongpassword"}).status_code == 401
    assert client.post("/auth/login", json={"email": email, "password": "testpassword123"}).status_code == 200


def test_register_throttled_after_three_attempts(client):
    payload = {"name": "Spam", "email": "spam@example.com", "password": "testpassword123"}
    assert client.post("/auth/register", json=payload).status_code == 201
    assert client.post("/auth/register", json=payload).status_code == 409
    assert client.post("/auth/register", json=payload).status_code == 409
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 429


def test_throttle_message_is_localized(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": "x@example.com", "password": "wrongpassword"})
    response = client.post("/auth/login", json={"email": "x@example.com", "password": "wrongpassword"},
                           headers={"X-Locale": "de"})
    assert response.status_code == 429
    assert response.headers["content-language"] == "de"
    assert "Sekunden" in response.json()["error"]["message"]


def test_health_is_not_rate_limited(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] is True
    assert response.json()["cache"] is True


def test_each_attempt_is_counted_once(limiter, monkeypatch):
    def no_separate_test(*args, **kwargs):
        raise AssertionError("check() darf nicht getrennt prüfen und zählen")

    monkeypatch.setattr(limiter.strategy, "test", no_separate_test)
    for _ in range(4):
        limiter.check("login", "1.2.3.4", "a@example.com")
    item = limiter.limit_for("login")
    _, remaining = limiter.strategy.get_window_stats(item, limiter.key("login", "1.2.3.4", "a@example.com"))
    assert remaining == 1

    limiter.check("login", "1.2.3.4", "a@example.com")
    with pytest.raises(RateLimitedError):
        limiter.check("login", "1.2.3.4", "a@example.com")


def test_default_limit_applies_to_other_auth_endpoints():
    limiter = AuthRateLimiter("memory://", limits={"login": "5/minute"}, default="10/minute")
    try:
        for _ in range(10):
            limiter.check("refresh", "1.2.3.4", "a@example.com")
        with pytest.raises(RateLimitedError):
            limiter.check("refresh", "1.2.3.4", "a@example.com")
        limiter.check("logout", "1.2.3.4", "a@example.com")
    finally:
        limiter.reset()


def test_refresh_throttled_after_ten_calls(client):
    token, _, _ = create_random_user(client)
    for _ in range(10):
        response = client.post("/auth/refresh", headers=auth_headers(token))
        assert response.status_code == 200, response.text
        token = response.json()["token"]

    response = client.post("/auth/refresh", headers=auth_headers(token))
    assert response.status_code == 429
    assert response.json()["error"]["code"] == "TOO_MANY_ATTEMPTS"
    # gedrosselter Aufruf widerruft das Token nicht
    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 200
