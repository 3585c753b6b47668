"""
auth/identity.py -- Map a third-party identity onto a local account.

The caller declares its intent up front:
  LOGIN  -- the account must already exist; never creates one.
  SIGNUP -- the account must not exist; creates an OAuth-only account and
            queues the welcome message.

Accounts created here have no password hash. The credential validator
refuses password logins for them until a password is set through
change-password or the recovery flow.
"""

from __future__ import annotations

import logging

from auth.models import Account, AuthMode, IdentityAssertion
from auth.notifications import NotificationService
from auth.store import CredentialStore
from core.errors import BadRequestError, ConflictError, InternalError, NotFoundError

logger = logging.getLogger("authkeep.auth.identity")

_USERNAME_MAX = 20


def parse_mode(raw: str | None) -> AuthMode:
    """Turn the caller-supplied mode string into an AuthMode."""
    try:
        return AuthMode((raw or "").lower())
    except ValueError as exc:
        raise BadRequestError("Invalid mode") from exc


class IdentityReconciler:
    def __init__(self, store: CredentialStore, notifications: NotificationService) -> None:
        self._store = store
        self._notifications = notifications

    def reconcile(self, assertion: IdentityAssertion, mode: AuthMode) -> Account:
        if not assertion.email:
            raise BadRequestError("Identity provider did not return an email address")

        existing = self._store.get_account_by_email(assertion.email)
        if mode is AuthMode.LOGIN:
            if existing is None:
                raise NotFoundError("An account with this email address was not found.")
            return existing

        if existing is not None:
            raise ConflictError("User with this email already exists!")

        username = self._available_username(assertion.display_name)
        try:
            created = self._store.create_account(self._oauth_account(assertion, username))
        except ConflictError as exc:
            # The chosen username may have been taken since _available_username
            # looked. Only an email clash is a real conflict.
            if username is None or self._store.get_account_by_email(assertion.email) is not None:
                raise ConflictError("User with this email already exists!") from exc
            logger.info("Username %r was taken concurrently; creating account without one", username)
            created = self._store.create_account(self._oauth_account(assertion, None))
        if created is None or created.id is None:
            created = self._store.get_account_by_email(assertion.email)
            if created is None:
                raise InternalError("Account was not found after creation")

        try:
            self._notifications.queue_welcome_message(created.email, created.username)
        except Exception as exc:
            logger.exception("Welcome message could not be queued for account id=%s", created.id)
            raise InternalError("Welcome message could not be queued") from exc

        logger.info("Created OAuth account id=%s", created.id)
        return created

    @staticmethod
    def _oauth_account(assertion: IdentityAssertion, username: str | None) -> Account:
        return Account(
            email=assertion.email,
            username=username,
            hashed_password=None,
            avatar_url=assertion.avatar_url,
        )

    def _available_username(self, display_name: str | None) -> str | None:
        """Use the provider's display name as username when it fits and is free."""
        if not display_name:
            return None
        candidate = display_name.strip()[:_USERNAME_MAX].rstrip()
        if not candidate or self._store.get_account_by_username(candidate) is not None:
            return None
        return candidate
