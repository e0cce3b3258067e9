import pytest

from conftest import bearer, expire_link, login
from linkauth.services import email as email_service
from linkauth.services.auth import LINK_REQUESTED_MESSAGE
from linkauth.services.users import user_store


def test_root_and_health(client):
    assert client.get("/").json() == {"status": "Backend running"}

    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "up"


def test_full_login_refresh_logout_flow(client, outbox):
    data = login(client, outbox, "Flow@Example.com")
    assert data["token_type"] == "bearer"
    assert data["expires_in_seconds"] == 15 * 60
    assert data["refresh_expires_in_seconds"] == 7 * 86400
    assert data["user"]["email"] == "flow@example.com"
    assert data["user"]["role"] == "user"
    assert data["user"]["last_login_at"] is not None

    headers = {"Authorization": f"Bearer {data['access_token']}"}
    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "flow@example.com"

    refreshed = client.post("/auth/refresh", json={"refresh_token": data["refresh_token"]})
    assert refreshed.status_code == 200
    rotated = refreshed.json()
    assert rotated["refresh_token"] != data["refresh_token"]

    stale = client.post("/auth/refresh", json={"refresh_token": data["refresh_token"]})
    assert stale.status_code == 401
    assert stale.json()["detail"]["code"] == "SESSION_NOT_FOUND"
    assert stale.headers["WWW-Authenticate"] == "Bearer"

    logout = client.post("/auth/logout", json={"refresh_token": rotated["refresh_token"]})
    assert logout.status_code == 200
    again = client.post("/auth/logout", json={"refresh_token": rotated["refresh_token"]})
    assert again.status_code == 200

    after = client.post("/auth/refresh", json={"refresh_token": rotated["refresh_token"]})
    assert after.status_code == 401


def test_link_request_response_is_identical_for_all_addresses(client, outbox, make_user):
    make_user("known@example.com")

    known = client.post("/auth/magic-link/request", json={"email": "known@example.com"})
    unknown = client.post("/auth/magic-link/request", json={"email": "nobody@example.com"})
    outbox.fail = True
    undeliverable = client.post(
        "/auth/magic-link/request", json={"email": "bounce@example.com"}
    )

    for response in (known, unknown, undeliverable):
        assert response.status_code == 200
        assert response.json() == {"message": LINK_REQUESTED_MESSAGE}
    assert [email for email, _ in outbox.sent] == [
        "known@example.com",
        "nobody@example.com",
    ]


def test_unknown_address_gets_account_on_first_redemption(client, outbox):
    client.post("/auth/magic-link/request", json={"email": "new@example.com"})
    assert user_store.find_by_email("new@example.com") is None

    verify = client.post(
        "/auth/magic-link/verify",
        json={"token": outbox.last_token("new@example.com")},
    )
    assert verify.status_code == 200
    assert user_store.find_by_email("new@example.com") is not None


def test_invalid_email_is_rejected(client, outbox):
    response = client.post("/auth/magic-link/request", json={"email": "not-an-email"})
    assert response.status_code == 422
    assert outbox.sent == []


def test_verify_failures_map_to_status_codes(client, outbox):
    unknown = client.post("/auth/magic-link/verify", json={"token": "f" * 64})
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["code"] == "NOT_FOUND"

    client.post("/auth/magic-link/request", json={"email": "twice@example.com"})
    token = outbox.last_token("twice@example.com")
    assert client.post("/auth/magic-link/verify", json={"token": token}).status_code == 200
    reused = client.post("/auth/magic-link/verify", json={"token": token})
    assert reused.status_code == 409
    assert reused.json()["detail"]["code"] == "ALREADY_USED"

    client.post("/auth/magic-link/request", json={"email": "late@example.com"})
    late_token = outbox.last_token("late@example.com")
    expire_link(late_token)
    late = client.post("/auth/magic-link/verify", json={"token": late_token})
    assert late.status_code == 400
    assert late.json()["detail"]["code"] == "EXPIRED"


def test_deactivated_account_cannot_log_in(client, outbox, make_user):
    user = make_user("benched@example.com")
    user_store.set_active(user.id, False)

    client.post("/auth/magic-link/request", json={"email": "benched@example.com"})
    response = client.post(
        "/auth/magic-link/verify",
        json={"token": outbox.last_token("benched@example.com")},
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "ACCOUNT_DEACTIVATED"


def test_protected_routes_require_credentials(client):
    for path in ("/auth/me", "/users/me", "/users/me/sessions/count"):
        response = client.get(path)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    garbage = client.get("/users/me", headers={"Authorization": "Bearer nonsense"})
    assert garbage.status_code == 401

    assert client.post("/auth/logout-all").status_code == 401


def test_admin_routes_forbid_regular_users(client, make_user):
    user = make_user("plain@example.com")
    admin = make_user("boss@example.com", role="admin")
    response = client.get("/admin/stats", headers=bearer(user))
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "FORBIDDEN"

    assert client.get("/admin/stats").status_code == 401
    assert client.get("/admin/stats", headers=bearer(admin)).status_code == 200


def test_session_count_and_logout_all(client, outbox):
    first = login(client, outbox, "multi@example.com")
    login(client, outbox, "multi@example.com")
    headers = {"Authorization": f"Bearer {first['access_token']}"}

    count = client.get("/users/me/sessions/count", headers=headers)
    assert count.json() == {"count": 2}

    profile = client.get("/users/me", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["id"] == first["user"]["id"]

    logout_all = client.post("/auth/logout-all", headers=headers)
    assert logout_all.status_code == 200
    assert client.get("/users/me/sessions/count", headers=headers).json() == {"count": 0}

    # The access credential stays valid until it lapses.
    assert client.get("/users/me", headers=headers).status_code == 200
    refresh = client.post("/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert refresh.status_code == 401


@pytest.mark.parametrize("garbage", ["x", "x" * 40, "not.a.jwt"])
def test_refresh_with_garbage_is_invalid_credential(client, garbage):
    response = client.post("/auth/refresh", json={"refresh_token": garbage})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_CREDENTIAL"


def test_link_request_survives_delivery_timeout(client, monkeypatch):
    def _timeout(to_email, token):
        raise TimeoutError("read timed out")

    monkeypatch.setattr(email_service, "send_magic_link_email", _timeout)

    response = client.post("/auth/magic-link/request", json={"email": "slow@example.com"})

    assert response.status_code == 200
    assert response.json() == {"message": LINK_REQUESTED_MESSAGE}
