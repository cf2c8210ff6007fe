import pytest

from blueprints.auth_helpers import issue_tokens, user_from_token
from models import AuditLog, User, UserRole
from conftest import DEFAULT_PASSWORD, TURNSTILE_TOKEN


def _register(client, **overrides):
    body = {
        "email": "casey@example.com",
        "password": DEFAULT_PASSWORD,
        "firstName": "Casey",
        "lastName": "Clue",
        "turnstileToken": TURNSTILE_TOKEN,
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/api/auth/login",
                       json={"email": email, "password": password, "turnstileToken": TURNSTILE_TOKEN})


def test_register_returns_user_and_tokens(client):
    resp = _register(client, email="Casey@Example.com")

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "casey@example.com"
    assert body["user"]["role"] == "PARTICIPANT"
    assert body["tokens"]["accessToken"]
    assert body["tokens"]["refreshToken"]
    assert AuditLog.query.filter_by(action="USER_REGISTER").count() == 1


def test_register_duplicate_email_conflicts(client, make_user):
    make_user(email="casey@example.com")

    resp = _register(client)

    assert resp.status_code == 409


@pytest.mark.parametrize("overrides", [
    {"password": "short"},
    {"email": "not-an-email"},
    {"firstName": ""},
])
def test_register_validates_input(client, overrides):
    resp = _register(client, **overrides)

    assert resp.status_code == 400
    assert User.query.count() == 0


def test_register_without_turnstile_token_is_rejected(client):
    resp = _register(client, turnstileToken=None)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "MISSING_TURNSTILE_TOKEN"


def test_login_with_valid_credentials(client, make_participant):
    participant = make_participant(email="hunter@example.com")

    resp = _login(client, "hunter@example.com")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["user"]["participant"]["id"] == participant.id
    assert body["tokens"]["accessToken"]
    assert AuditLog.query.filter_by(action="USER_LOGIN").count() == 1


def test_login_with_wrong_password(client, make_user):
    make_user(email="hunter@example.com")

    resp = _login(client, "hunter@example.com", password="wrong-password")

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid email or password"


def test_login_to_disabled_account(client, make_user):
    make_user(email="gone@example.com", active=False)

    resp = _login(client, "gone@example.com")

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Account is disabled"


def test_me_requires_token(client):
    resp = client.get("/api/auth/me")

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Access denied. No token provided."


def test_me_with_garbage_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid token."


def test_me_returns_current_user(client, make_user, auth_headers):
    user = make_user(email="me@example.com")

    resp = client.get("/api/auth/me", headers=auth_headers(user))

    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == "me@example.com"


def test_refresh_issues_new_tokens(app, client, make_user):
    user = make_user()
    with app.test_request_context():
        refresh_token = issue_tokens(user)["refreshToken"]

    resp = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})

    assert resp.status_code == 200
    assert resp.get_json()["tokens"]["accessToken"]


def test_access_token_cannot_be_used_to_refresh(app, client, make_user):
    user = make_user()
    with app.test_request_context():
        access_token = issue_tokens(user)["accessToken"]

    resp = client.post("/api/auth/refresh", json={"refreshToken": access_token})

    assert resp.status_code == 401


def test_tokens_stop_working_for_deactivated_users(app, make_user):
    user = make_user()
    with app.test_request_context():
        token = issue_tokens(user)["accessToken"]
        assert user_from_token(token).id == user.id

        user.is_active_account = False
        assert user_from_token(token) is None


def test_logout_is_audited(client, make_user, auth_headers):
    user = make_user()

    resp = client.post("/api/auth/logout", headers=auth_headers(user))

    assert resp.status_code == 200
    assert AuditLog.query.filter_by(action="USER_LOGOUT", actor_user_id=user.id).count() == 1


def test_admin_routes_reject_participants(client, make_user, auth_headers):
    user = make_user(role=UserRole.PARTICIPANT)

    resp = client.get("/api/admin/dashboard", headers=auth_headers(user))

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Insufficient permissions."
