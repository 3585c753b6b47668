"""
auth/validator.py -- Email/password authentication with timing equalization.

validate() always runs bcrypt exactly once, whether or not the email exists,
so an attacker cannot enumerate accounts by measuring response time [C1]:
  - Unknown email:        bcrypt runs against DUMMY_HASH.
  - OAuth-only account:   bcrypt runs against DUMMY_HASH.
  - Wrong password:       bcrypt runs against the real hash.

The raised error kind is precise (NotFoundError vs InvalidCredentialError) for
logging and tests; the login route renders both with the same vague message.
"""

from __future__ import annotations

import logging

from auth.hashing import DUMMY_HASH, verify_password
from auth.store import CredentialStore
from core.errors import InvalidCredentialError, NotFoundError

logger = logging.getLogger("authkeep.auth.validator")


class CredentialValidator:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def validate(self, email: str, password: str) -> int:
        """Return the account id for a matching email/password pair.

        Never returns the account record itself: the hash stays in the store.
        """
        account = self._store.get_account_by_email(email)
        if account is None:
            verify_password(password, DUMMY_HASH)
            raise NotFoundError("User with this email does not exist")
        if account.hashed_password is None:
            # OAuth-only account: no password has been set yet.
            verify_password(password, DUMMY_HASH)
            logger.info("Password login attempted for OAuth-only account id=%s", account.id)
            raise InvalidCredentialError("Password does not match")
        if not verify_password(password, account.hashed_password):
            raise InvalidCredentialError("Password does not match")
        return account.id
