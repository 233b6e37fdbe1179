"""
Tests for UserRepository: account creation, uniqueness, lockout counting
and GitHub linking.
"""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet

from backend.app.schemas import UserPublic
from core.config import get_settings
from core.errors import ConflictError, ValidationError
from core.models import User
from core.repositories import UserRepository
from core.security.encryption import reset_encryption_service


@pytest.fixture
def repo(test_session):
    return UserRepository(test_session)


class TestCreateUser:
    def test_email_is_normalized(self, repo):
        user = repo.create_user("ada", "  Ada@Example.COM ", "hash")

        assert user.email == "ada@example.com"
        assert user.role == "student"
        assert user.active is True
        assert repo.find_by_email("ADA@example.com").id == user.id

    def test_duplicate_email_is_conflict(self, repo):
        repo.create_user("ada", "ada@example.com", "hash")

        with pytest.raises(ConflictError):
            repo.create_user("grace", "ADA@example.com", "hash")

    def test_duplicate_username_is_case_insensitive(self, repo):
        repo.create_user("ada", "ada@example.com", "hash")

        with pytest.raises(ConflictError):
            repo.create_user("ADA", "other@example.com", "hash")

    def test_invalid_role(self, repo):
        with pytest.raises(ValidationError):
            repo.create_user("ada", "ada@example.com", "hash", role="root")

    def test_public_schema_hides_secrets(self, repo):
        user = repo.create_user("ada", "ada@example.com", "hash")

        data = UserPublic.model_validate(user).model_dump()

        assert "password_hash" not in data
        assert "github_access_token" not in data
        assert "failed_login_count" not in data


class TestFailedLogins:
    def test_counter_increments(self, repo, sample_user):
        now = datetime.now(timezone.utc)

        repo.record_failed_login(sample_user.id, now)
        user = repo.record_failed_login(sample_user.id, now + timedelta(seconds=1))

        assert user.failed_login_count == 2
        assert not user.is_locked(now)

    def test_locks_at_threshold(self, repo, sample_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)

        for i in range(settings.max_failed_logins):
            user = repo.record_failed_login(sample_user.id, now + timedelta(seconds=i))

        assert user.failed_login_count == settings.max_failed_logins
        assert user.is_locked(now + timedelta(seconds=10))
        remaining = user.lock_remaining_seconds(now)
        assert 0 < remaining <= settings.lockout_minutes * 60 + 10

    def test_lock_expires(self, repo, sample_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        for _ in range(settings.max_failed_logins):
            user = repo.record_failed_login(sample_user.id, now)

        later = now + timedelta(minutes=settings.lockout_minutes, seconds=1)

        assert not user.is_locked(later)

    def test_failure_after_lock_expiry_starts_over(self, repo, sample_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        for _ in range(settings.max_failed_logins):
            repo.record_failed_login(sample_user.id, now)

        later = now + timedelta(minutes=settings.lockout_minutes, seconds=1)
        user = repo.record_failed_login(sample_user.id, later)

        assert user.failed_login_count == 1
        assert not user.is_locked(later)

    def test_failures_outside_window_start_over(self, repo, sample_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        for _ in range(settings.max_failed_logins - 1):
            repo.record_failed_login(sample_user.id, now)

        later = now + timedelta(minutes=settings.failed_login_window_minutes + 1)
        user = repo.record_failed_login(sample_user.id, later)

        assert user.failed_login_count == 1
        assert not user.is_locked(later)

    def test_reset_clears_lock_and_stamps_login(self, repo, sample_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        for _ in range(settings.max_failed_logins):
            repo.record_failed_login(sample_user.id, now)

        repo.reset_failed_logins(sample_user.id, now)
        user = repo.reload(sample_user.id)

        assert user.failed_login_count == 0
        assert user.locked_until is None
        assert user.last_login is not None


class TestGitHubAccounts:
    def test_unique_username_from_login(self, repo, make_user):
        make_user(username="octocat", email="someone@example.com")

        derived = repo.unique_username("octocat")

        assert derived != "octocat"
        assert derived.startswith("octocat_")
        assert repo.find_by_username(derived) is None

    def test_short_or_odd_login_is_padded(self, repo):
        assert repo.unique_username("a.b") == "ab_user"

    def test_create_from_github_has_no_password(self, repo):
        user = repo.create_from_github(
            github_id="42",
            login="octocat",
            email="Octo@Example.com",
            profile={"avatar_url": "https://a/42"},
            access_token="gho_abc",
        )

        assert user.password_hash is None
        assert user.github_id == "42"
        assert user.email == "octo@example.com"
        assert user.avatar_url == "https://a/42"
        assert repo.find_by_github_id(42).id == user.id

    def test_github_token_encrypted_when_key_set(self, repo, monkeypatch):
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
        get_settings.cache_clear()
        reset_encryption_service()

        user = repo.create_from_github(
            github_id="42", login="octocat", email="octo@example.com", profile={}, access_token="gho_abc"
        )

        assert user.github_access_token != "gho_abc"
        assert repo.get_decrypted_token(user) == "gho_abc"

    def test_link_merges_profile(self, repo, sample_user):
        repo.update_github_link(sample_user.id, github_id="42", github_profile={"login": "ada-gh"})
        user = repo.update_github_link(sample_user.id, github_id="42", github_profile={"bio": "hi"})

        assert user.github_id == "42"
        assert user.github_profile == {"login": "ada-gh", "bio": "hi"}
        assert user.password_hash is not None


class TestAccountManagement:
    def test_set_role(self, repo, sample_user):
        assert repo.set_role(sample_user.id, "mentor").role == "mentor"

    def test_set_role_rejects_unknown(self, repo, sample_user):
        with pytest.raises(ValidationError):
            repo.set_role(sample_user.id, "owner")

    def test_profile_update_conflict(self, repo, sample_user, make_user):
        make_user(username="grace", email="grace@example.com")

        with pytest.raises(ConflictError):
            repo.update_profile(sample_user.id, email="GRACE@example.com")

    def test_count(self, repo, make_user):
        make_user(username="grace", email="grace@example.com")
        make_user(username="linus", email="linus@example.com", active=False)

        assert repo.count() == 2
        assert repo.count(active=True) == 1
        assert repo.session.query(User).count() == 2
