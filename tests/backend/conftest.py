import json
import os
import sys
from collections.abc import Callable, Iterator
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.append(PROJECT_ROOT)

from backend.app.database import get_db  # noqa: E402
from backend.app.main import create_app  # noqa: E402
from core.api.github_oauth import GitHubOAuthClient, get_github_client  # noqa: E402
from core.security.tokens import get_token_service  # noqa: E402

API = "/api"


@pytest.fixture
def test_app_client(test_db) -> Iterator[tuple[TestClient, sessionmaker]]:
    db_url, TestingSessionLocal, engine = test_db

    app = create_app()

    def override_get_db() -> Iterator[Session]:
        db = TestingSessionLocal()
        try:
            yield db
            db.commit()  # Auto-commit on success like production
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, TestingSessionLocal


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build a Bearer header for a user with the app's token service."""

    def build(user) -> dict[str, str]:
        pair = get_token_service().issue_token_pair(user)
        return {"Authorization": f"Bearer {pair.access_token}"}

    return build


class FakeGitHub:
    """
    Scripted GitHub API behind an httpx.MockTransport.

    Records every request so tests can assert the provider was (or was not)
    contacted.
    """

    def __init__(self):
        self.calls: list[str] = []
        self.token_response: Any = {"access_token": "gho_test_token", "scope": "read:user,user:email"}
        self.user = {
            "id": 583231,
            "login": "octocat",
            "avatar_url": "https://avatars.example.com/u/583231",
            "html_url": "https://github.com/octocat",
            "name": "The Octocat",
        }
        self.emails = [
            {"email": "octocat@github.example", "primary": True, "verified": True},
            {"email": "other@example.com", "primary": False, "verified": True},
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json=self.token_response)
        if request.url.path == "/user":
            return httpx.Response(200, json=self.user)
        if request.url.path == "/user/emails":
            return httpx.Response(200, content=json.dumps(self.emails))
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self, settings) -> GitHubOAuthClient:
        return GitHubOAuthClient(settings, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_github(test_app_client, settings) -> FakeGitHub:
    client, _ = test_app_client
    github = FakeGitHub()
    client.app.dependency_overrides[get_github_client] = lambda: github.client(settings)
    yield github
    client.app.dependency_overrides.pop(get_github_client, None)


@pytest.fixture
def start_oauth(test_app_client) -> Callable[..., str]:
    """Begin the OAuth flow and return the state nonce GitHub would echo back."""
    client, _ = test_app_client

    def start(return_to: str | None = None) -> str:
        params = {"returnTo": return_to} if return_to else None
        resp = client.get(f"{API}/auth/github", params=params, follow_redirects=False)
        assert resp.status_code == 302
        query = parse_qs(urlparse(resp.headers["location"]).query)
        return query["state"][0]

    return start
