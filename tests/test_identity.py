"""
tests/test_identity.py -- IdentityReconciler login/signup semantics and parse_mode.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import RecordingPublisher, create_account

from auth.identity import IdentityReconciler, parse_mode
from auth.models import AuthMode, IdentityAssertion
from auth.notifications import WELCOME_EVENT, NotificationService
from core.errors import BadRequestError, ConflictError, InternalError, NotFoundError

ASSERTION = IdentityAssertion(
    email="carol@example.com",
    display_name="Carol Example",
    avatar_url="https://cdn.example.com/carol.png",
)


class TestParseMode:
    @pytest.mark.parametrize("raw, expected", [("login", AuthMode.LOGIN), ("SIGNUP", AuthMode.SIGNUP)])
    def test_accepts_known_modes(self, raw: str, expected: AuthMode) -> None:
        assert parse_mode(raw) is expected

    @pytest.mark.parametrize("raw", [None, "", "register", "admin"])
    def test_rejects_everything_else(self, raw) -> None:
        with pytest.raises(BadRequestError, match="Invalid mode"):
            parse_mode(raw)


class TestLoginMode:
    def test_returns_existing_account(self, services, store, publisher) -> None:
        existing = create_account(store, email="carol@example.com", username="carol")
        account = services.identity.reconcile(ASSERTION, AuthMode.LOGIN)
        assert account.id == existing.id
        assert publisher.events == []

    def test_missing_account_is_not_created(self, services, store) -> None:
        with pytest.raises(NotFoundError, match="An account with this email address was not found."):
            services.identity.reconcile(ASSERTION, AuthMode.LOGIN)
        assert store.get_account_by_email("carol@example.com") is None


class TestSignupMode:
    def test_creates_oauth_only_account(self, services, store, publisher) -> None:
        account = services.identity.reconcile(ASSERTION, AuthMode.SIGNUP)

        stored = store.get_account_by_email("carol@example.com")
        assert stored.id == account.id
        assert stored.hashed_password is None
        assert stored.avatar_url == "https://cdn.example.com/carol.png"
        assert stored.username == "Carol Example"
        assert publisher.of(WELCOME_EVENT) == [{"email": "carol@example.com", "username": "Carol Example"}]

    def test_existing_account_conflicts(self, services, store, publisher) -> None:
        create_account(store, email="carol@example.com", username="carol")
        with pytest.raises(ConflictError, match="User with this email already exists!"):
            services.identity.reconcile(ASSERTION, AuthMode.SIGNUP)
        assert publisher.events == []

    def test_taken_display_name_leaves_username_empty(self, services, store) -> None:
        create_account(store, email="other@example.com", username="Carol Example")
        account = services.identity.reconcile(ASSERTION, AuthMode.SIGNUP)
        assert account.username is None

    def test_username_taken_during_signup_falls_back_to_none(self, services, store) -> None:
        create_account(store, email="other@example.com", username="Carol Example")
        with patch.object(store, "get_account_by_username", return_value=None):
            account = services.identity.reconcile(ASSERTION, AuthMode.SIGNUP)
        assert account.username is None
        assert store.get_account_by_email("carol@example.com").id == account.id

    def test_long_display_name_is_truncated(self, services) -> None:
        assertion = IdentityAssertion(email="long@example.com", display_name="A Very Long Display Name Indeed")
        account = services.identity.reconcile(assertion, AuthMode.SIGNUP)
        assert account.username == "A Very Long Display"

    def test_welcome_failure_is_internal_error(self, store) -> None:
        reconciler = IdentityReconciler(store, NotificationService(RecordingPublisher(fail=True)))
        with pytest.raises(InternalError, match="Welcome message could not be queued"):
            reconciler.reconcile(ASSERTION, AuthMode.SIGNUP)

    def test_missing_email_rejected(self, services) -> None:
        with pytest.raises(BadRequestError):
            services.identity.reconcile(IdentityAssertion(email=""), AuthMode.SIGNUP)
