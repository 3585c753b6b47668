"""
auth/accounts.py -- Registration and self-service profile changes.

Every password written here goes through hash_password() first; the store
never sees plaintext. Format rules (length, character classes) are enforced
by the API models before these methods run.
"""

from __future__ import annotations

import logging

from auth.hashing import hash_password, verify_password
from auth.models import Account
from auth.notifications import NotificationService
from auth.store import CredentialStore
from core.errors import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger("authkeep.auth.accounts")


class AccountService:
    def __init__(self, store: CredentialStore, notifications: NotificationService) -> None:
        self._store = store
        self._notifications = notifications

    def register(self, email: str, password: str, username: str | None = None) -> Account:
        """Create a password account and queue the welcome message.

        The pre-check gives the friendly message; the store's UNIQUE
        constraint catches the concurrent case and raises ConflictError too.
        """
        if self._store.get_account_by_email(email) is not None:
            raise ConflictError("User with this email already exist")
        if username and self._store.get_account_by_username(username) is not None:
            raise ConflictError("Username is already taken.")

        account = self._store.create_account(
            Account(email=email, username=username, hashed_password=hash_password(password))
        )
        if account is None:
            account = self._store.get_account_by_email(email)
        self._notifications.queue_welcome_message(account.email, account.username)
        logger.info("Registered account id=%s", account.id)
        return account

    def get_account(self, account_id: int) -> Account:
        account = self._store.get_account_by_id(account_id)
        if account is None:
            raise NotFoundError("User with this id not found")
        return account

    def change_email(self, account_id: int, new_email: str) -> str:
        owner = self._store.get_account_by_email(new_email)
        if owner is not None and owner.id != account_id:
            raise ConflictError("This email is already in use.")
        account = self.get_account(account_id)
        if account.email == new_email:
            raise BadRequestError("This is already your current email.")
        self._store.update_account(account_id, email=new_email)
        logger.info("Email changed for account id=%s", account_id)
        return "User email updated successfully"

    def change_password(self, account_id: int, new_password: str) -> str:
        account = self.get_account(account_id)
        if account.hashed_password and verify_password(new_password, account.hashed_password):
            raise BadRequestError("New password must differ from the current one.")
        self._store.update_account(account_id, hashed_password=hash_password(new_password))
        logger.info("Password changed for account id=%s", account_id)
        return "User password updated successfully"

    def change_username(self, account_id: int, new_username: str) -> str:
        account = self.get_account(account_id)
        holder = self._store.get_account_by_username(new_username)
        if holder is not None:
            if holder.id == account.id:
                raise ConflictError("You already have this username.")
            raise ConflictError("Username is already taken.")
        self._store.update_account(account_id, username=new_username)
        return "Username updated successfully"
