import time
from urllib.parse import parse_qs, urlparse

from backend.app.auth.github_flow import GitHubFlow, get_github_flow
from backend.app.models import User
from core.repositories import UserRepository
from core.security.tokens import TokenService, get_token_service
from core.sessions import get_session_store

API = "/api"
FRONTEND = "http://frontend.test"


def _callback(client, **params):
    return client.get(f"{API}/auth/github/callback", params=params, follow_redirects=False)


def _error_code(resp) -> str:
    location = resp.headers["location"]
    assert location.startswith(f"{FRONTEND}/login?")
    return parse_qs(urlparse(location).query)["error"][0]


# =============================================================================
# Start
# =============================================================================


def test_github_login_redirects_with_state(test_app_client):
    client, _ = test_app_client

    resp = client.get(f"{API}/auth/github", follow_redirects=False)

    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith("https://github.com/login/oauth/authorize?")
    query = parse_qs(urlparse(location).query)
    assert len(query["state"][0]) >= 32
    assert query["client_id"] == ["test-client-id"]
    # Nonce lives server-side; the browser only gets an opaque session id
    assert "code_tutor.sid" in resp.cookies
    assert query["state"][0] not in resp.headers.get("set-cookie", "")


def test_client_chosen_session_id_is_not_adopted(test_app_client):
    client, _ = test_app_client

    resp = client.get(
        f"{API}/auth/github",
        headers={"Cookie": "code_tutor.sid=attacker-chosen-id"},
        follow_redirects=False,
    )

    assert resp.cookies["code_tutor.sid"] != "attacker-chosen-id"


# =============================================================================
# Callback
# =============================================================================


def test_callback_creates_user_and_redirects_with_token(test_app_client, fake_github, start_oauth):
    client, session_factory = test_app_client
    state = start_oauth("/dashboard")

    resp = _callback(client, code="good-code", state=state)

    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(f"{FRONTEND}/dashboard?access_token=")
    assert "refreshToken" in resp.cookies
    assert fake_github.calls[0] == "/login/oauth/access_token"
    assert sorted(fake_github.calls[1:]) == ["/user", "/user/emails"]

    access_token = parse_qs(urlparse(location).query)["access_token"][0]
    profile = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {access_token}"})
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["username"] == "octocat"

    session = session_factory()
    user = session.query(User).filter_by(github_id="583231").one()
    assert user.email == "octocat@github.example"
    assert user.password_hash is None
    assert user.avatar_url == "https://avatars.example.com/u/583231"
    session.close()


def test_returning_github_user_is_not_duplicated(test_app_client, fake_github, start_oauth):
    client, session_factory = test_app_client

    assert _callback(client, code="one", state=start_oauth()).status_code == 302
    resp = _callback(client, code="two", state=start_oauth())

    assert resp.headers["location"].startswith(f"{FRONTEND}/playground?access_token=")
    session = session_factory()
    assert session.query(User).count() == 1
    session.close()


def test_mismatched_state_never_contacts_github(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    state = start_oauth()

    resp = _callback(client, code="good-code", state="forged-state")

    assert _error_code(resp) == "invalid_state"
    assert fake_github.calls == []

    # The nonce was consumed by the failed attempt
    assert _error_code(_callback(client, code="good-code", state=state)) == "invalid_state"
    assert fake_github.calls == []


def test_callback_without_started_flow(test_app_client, fake_github):
    client, _ = test_app_client

    resp = _callback(client, code="good-code", state="anything")

    assert _error_code(resp) == "invalid_state"
    assert fake_github.calls == []


def test_provider_denial(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    state = start_oauth()

    resp = _callback(client, error="access_denied", state=state)

    assert _error_code(resp) == "access_denied"
    assert fake_github.calls == []


def test_state_reuse_after_success_fails(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    state = start_oauth()

    assert _callback(client, code="good-code", state=state).headers["location"].startswith(
        f"{FRONTEND}/playground"
    )
    assert _error_code(_callback(client, code="good-code", state=state)) == "invalid_state"


def test_stale_session_copy_cannot_replay_state(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    state = start_oauth()
    session_id = client.cookies["code_tutor.sid"]
    sessions = get_session_store()
    snapshot = sessions.load(session_id)

    assert _callback(client, code="good-code", state=state).status_code == 302
    # A second callback that loaded the session before the first one saved it
    sessions.save(session_id, snapshot)
    resp = _callback(client, code="good-code", state=state)

    assert _error_code(resp) == "invalid_state"
    assert fake_github.calls.count("/login/oauth/access_token") == 1


def test_slow_flow_times_out(test_app_client, fake_github, start_oauth, settings, clock):
    client, _ = test_app_client
    flow = GitHubFlow(settings, fake_github.client(settings), get_token_service(), clock=clock)
    client.app.dependency_overrides[get_github_flow] = lambda: flow
    state = start_oauth()

    clock.advance(settings.oauth_flow_timeout_seconds + 1)
    resp = _callback(client, code="good-code", state=state)

    assert _error_code(resp) == "oauth_timeout"
    assert fake_github.calls == []
    client.app.dependency_overrides.pop(get_github_flow, None)


def test_missing_primary_email(test_app_client, fake_github, start_oauth):
    client, session_factory = test_app_client
    fake_github.emails = [{"email": "x@example.com", "primary": False, "verified": True}]

    resp = _callback(client, code="good-code", state=start_oauth())

    assert _error_code(resp) == "no_primary_email"
    session = session_factory()
    assert session.query(User).count() == 0
    session.close()


def test_bad_code_is_generic_failure(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    fake_github.token_response = {"error": "bad_verification_code"}

    resp = _callback(client, code="stale-code", state=start_oauth())

    assert _error_code(resp) == "github_auth_failed"
    assert "refreshToken" not in resp.cookies


def test_non_object_token_response_is_generic_failure(test_app_client, fake_github, start_oauth):
    client, session_factory = test_app_client
    fake_github.token_response = []

    resp = _callback(client, code="good-code", state=start_oauth())

    assert _error_code(resp) == "github_auth_failed"
    assert fake_github.calls == ["/login/oauth/access_token"]
    session = session_factory()
    assert session.query(User).count() == 0
    session.close()


def test_email_collision_is_rejected_by_default(test_app_client, fake_github, start_oauth, make_user):
    client, session_factory = test_app_client
    make_user(username="octo", email="octocat@github.example")

    resp = _callback(client, code="good-code", state=start_oauth())

    assert _error_code(resp) == "account_conflict"
    session = session_factory()
    assert session.query(User).filter_by(github_id="583231").first() is None
    session.close()


def test_verified_email_links_when_policy_allows(
    test_app_client, fake_github, start_oauth, make_user, settings
):
    client, session_factory = test_app_client
    existing = make_user(username="octo", email="octocat@github.example")
    linking = settings.model_copy(update={"github_email_link_policy": "link_verified"})
    client.app.dependency_overrides[get_github_flow] = lambda: GitHubFlow(
        linking, fake_github.client(linking), get_token_service()
    )

    resp = _callback(client, code="good-code", state=start_oauth())

    assert resp.headers["location"].startswith(f"{FRONTEND}/playground?access_token=")
    session = session_factory()
    user = session.get(User, existing.id)
    assert user.github_id == "583231"
    assert user.password_hash is not None
    assert session.query(User).count() == 1
    session.close()
    client.app.dependency_overrides.pop(get_github_flow, None)


def test_unverified_email_never_links(test_app_client, fake_github, start_oauth, make_user, settings):
    client, _ = test_app_client
    make_user(username="octo", email="octocat@github.example")
    fake_github.emails = [{"email": "octocat@github.example", "primary": True, "verified": False}]
    linking = settings.model_copy(update={"github_email_link_policy": "link_verified"})
    client.app.dependency_overrides[get_github_flow] = lambda: GitHubFlow(
        linking, fake_github.client(linking), get_token_service()
    )

    resp = _callback(client, code="good-code", state=start_oauth())

    assert _error_code(resp) == "account_conflict"
    client.app.dependency_overrides.pop(get_github_flow, None)


def test_disabled_github_account(test_app_client, fake_github, start_oauth, test_session):
    client, _ = test_app_client
    repo = UserRepository(test_session)
    user = repo.create_from_github(
        github_id="583231", login="octocat", email="octocat@github.example", profile={}
    )
    repo.set_active(user.id, False)
    test_session.commit()

    resp = _callback(client, code="good-code", state=start_oauth())

    assert _error_code(resp) == "access_denied"
    assert "refreshToken" not in resp.cookies


def test_external_return_to_is_ignored(test_app_client, fake_github, start_oauth):
    client, _ = test_app_client
    state = start_oauth("https://evil.example/steal")

    resp = _callback(client, code="good-code", state=state)

    assert resp.headers["location"].startswith(f"{FRONTEND}/playground?access_token=")


# =============================================================================
# Logout / Status
# =============================================================================


def _register(client, strong_password, username="ada", email="ada@example.com"):
    resp = client.post(
        f"{API}/users/register",
        json={"username": username, "email": email, "password": strong_password},
    )
    assert resp.status_code == 201
    return resp.json()["data"]["accessToken"], resp.cookies["refreshToken"]


def test_logout_revokes_tokens(test_app_client, strong_password):
    client, _ = test_app_client
    access, refresh = _register(client, strong_password)
    bearer = {"Authorization": f"Bearer {access}"}

    resp = client.post(f"{API}/auth/logout", headers=bearer)

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Logged out successfully"}

    after = client.get(f"{API}/users/profile", headers=bearer)
    assert after.status_code == 401
    assert after.json()["error"] == "Token has been revoked"

    replay = client.post(f"{API}/users/refresh", headers={"Cookie": f"refreshToken={refresh}"})
    assert replay.status_code == 401


def test_logout_revokes_access_token_paired_with_cookie(test_app_client, strong_password):
    client, _ = test_app_client
    access, refresh = _register(client, strong_password)

    # Only the cookie is presented; its paired access token dies with it
    resp = client.post(f"{API}/auth/logout", headers={"Cookie": f"refreshToken={refresh}"})

    assert resp.status_code == 200
    after = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {access}"})
    assert after.status_code == 401


def test_logout_always_succeeds(test_app_client):
    client, _ = test_app_client

    bare = client.post(f"{API}/auth/logout")
    garbage = client.post(
        f"{API}/auth/logout",
        headers={"Authorization": "Bearer not-a-token", "Cookie": "refreshToken=also-not-a-token"},
    )

    assert bare.status_code == 200
    assert garbage.status_code == 200
    cleared = " ".join(garbage.headers.get_list("set-cookie"))
    for name in ("refreshToken=", "code_tutor.sid=", "accessToken=", "connect.sid="):
        assert name in cleared


def test_status_authenticated(test_app_client, sample_user, auth_headers):
    client, _ = test_app_client

    resp = client.get(f"{API}/auth/status", headers=auth_headers(sample_user))

    assert resp.status_code == 200
    body = resp.json()
    assert body["isAuthenticated"] is True
    assert body["user"] == {
        "id": sample_user.id,
        "username": "ada",
        "email": "ada@example.com",
        "role": "student",
    }


def test_status_without_token(test_app_client):
    client, _ = test_app_client

    resp = client.get(f"{API}/auth/status")

    assert resp.status_code == 401
    assert resp.json()["isAuthenticated"] is False
    assert resp.json()["success"] is False


def test_status_with_expired_token(test_app_client, sample_user, settings):
    client, _ = test_app_client
    stale = TokenService(
        settings,
        get_token_service().revocations,
        clock=lambda: time.time() - settings.access_token_ttl_seconds - 60,
    )
    access = stale.issue_token_pair(sample_user).access_token

    resp = client.get(f"{API}/auth/status", headers={"Authorization": f"Bearer {access}"})

    assert resp.status_code == 401
    assert resp.json()["isAuthenticated"] is False
    assert resp.json()["error"] == "Token expired. Please log in again."
