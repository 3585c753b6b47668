"""
tests/test_accounts.py -- AccountService: registration and profile changes.
"""

from __future__ import annotations

import pytest
from conftest import PASSWORD, create_account

from auth.hashing import verify_password
from auth.notifications import WELCOME_EVENT
from core.errors import BadRequestError, ConflictError, NotFoundError


class TestRegister:
    def test_register_hashes_password_and_queues_welcome(self, services, store, publisher) -> None:
        account = services.accounts.register("dave@example.com", PASSWORD, "dave")

        stored = store.get_account_by_id(account.id)
        assert stored.hashed_password != PASSWORD
        assert verify_password(PASSWORD, stored.hashed_password)
        assert publisher.of(WELCOME_EVENT) == [{"email": "dave@example.com", "username": "dave"}]

    def test_register_without_username(self, services, publisher) -> None:
        account = services.accounts.register("dave@example.com", PASSWORD)
        assert account.username is None
        assert publisher.of(WELCOME_EVENT) == [{"email": "dave@example.com", "username": None}]

    def test_duplicate_email(self, services, store) -> None:
        create_account(store, email="dave@example.com")
        with pytest.raises(ConflictError, match="User with this email already exist"):
            services.accounts.register("dave@example.com", PASSWORD, "dave2")

    def test_duplicate_username(self, services, store) -> None:
        create_account(store, username="dave")
        with pytest.raises(ConflictError, match="Username is already taken."):
            services.accounts.register("dave@example.com", PASSWORD, "dave")


class TestProfileChanges:
    def test_get_unknown_account(self, services) -> None:
        with pytest.raises(NotFoundError, match="User with this id not found"):
            services.accounts.get_account(12345)

    def test_change_email(self, services, store) -> None:
        account = create_account(store)
        assert services.accounts.change_email(account.id, "alice@new.example.com") == "User email updated successfully"
        assert store.get_account_by_id(account.id).email == "alice@new.example.com"

    def test_change_email_to_taken_address(self, services, store) -> None:
        account = create_account(store)
        create_account(store, email="bob@example.com", username="bob")
        with pytest.raises(ConflictError, match="This email is already in use."):
            services.accounts.change_email(account.id, "bob@example.com")

    def test_change_email_to_same_address(self, services, store) -> None:
        account = create_account(store)
        with pytest.raises(BadRequestError, match="This is already your current email."):
            services.accounts.change_email(account.id, "alice@example.com")

    def test_change_password(self, services, store) -> None:
        account = create_account(store)
        assert services.accounts.change_password(account.id, "N3w!Passw0rd") == "User password updated successfully"
        assert verify_password("N3w!Passw0rd", store.get_account_by_id(account.id).hashed_password)

    def test_change_password_to_current(self, services, store) -> None:
        account = create_account(store)
        with pytest.raises(BadRequestError, match="New password must differ from the current one."):
            services.accounts.change_password(account.id, PASSWORD)

    def test_change_password_sets_first_password_for_oauth_account(self, services, store) -> None:
        account = create_account(store, password=None)
        services.accounts.change_password(account.id, "N3w!Passw0rd")
        assert services.validator.validate("alice@example.com", "N3w!Passw0rd") == account.id

    def test_change_username(self, services, store) -> None:
        account = create_account(store)
        assert services.accounts.change_username(account.id, "alice2") == "Username updated successfully"
        assert store.get_account_by_id(account.id).username == "alice2"

    def test_change_username_to_own(self, services, store) -> None:
        account = create_account(store)
        with pytest.raises(ConflictError, match="You already have this username."):
            services.accounts.change_username(account.id, "alice")

    def test_change_username_to_taken(self, services, store) -> None:
        account = create_account(store)
        create_account(store, email="bob@example.com", username="bob")
        with pytest.raises(ConflictError, match="Username is already taken."):
            services.accounts.change_username(account.id, "bob")
