"""
auth/recovery.py -- Password recovery: request a code, then reset with it.

Per-account state machine over the recovery_codes table:

  NONE     no row                   -> create code, publish, commit   (SENT)
  ACTIVE   row, now <  expires_at   -> roll back, publish nothing     (ALREADY_ACTIVE)
  EXPIRED  row, now >= expires_at   -> renew in place, publish, commit (RENEWED)

Each operation runs inside a single store transaction. The notification is
published before the commit, so a publish failure rolls the new code back
and the caller sees the failure; a code that was never sent is never stored.

Races on the same account:
  NONE -> ACTIVE: UNIQUE(account_id) makes the second insert fail; the loser
      rolls back and reports ALREADY_ACTIVE without publishing.
  EXPIRED -> ACTIVE: the renewal is a conditional UPDATE on expires_at, so
      only one of two concurrent renewals matches a row.
Either way at most one notification goes out per race.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
from collections.abc import Callable

from auth.hashing import hash_password
from auth.models import RecoveryCode, RecoveryResult, RecoveryStatus
from auth.notifications import NotificationService
from auth.store import CredentialStore
from core.errors import ConflictError, GoneError, NotFoundError

logger = logging.getLogger("authkeep.auth.recovery")

CODE_SENT_MESSAGE = "Recovery code was sent to your email"
ALREADY_ACTIVE_MESSAGE = "You already have a valid recovery code in your email."
PASSWORD_UPDATED_MESSAGE = "Password updated successfully"


def generate_recovery_code() -> str:
    """Return exactly six uniformly random decimal digits."""
    return f"{secrets.randbelow(10**6):06d}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RecoveryManager:
    """Usage:
    manager = RecoveryManager(store, NotificationService(publisher), code_ttl_seconds=900)
    manager.request_recovery("a@x.com")
    manager.reset_password("a@x.com", "123456", "N3w!Passw0rd")
    """

    def __init__(
        self,
        store: CredentialStore,
        notifications: NotificationService,
        *,
        code_ttl_seconds: int,
        clock_ms: Callable[[], int] = _now_ms,
        code_generator: Callable[[], str] = generate_recovery_code,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._ttl_ms = code_ttl_seconds * 1000
        self._clock_ms = clock_ms
        self._generate = code_generator

    def request_recovery(self, email: str) -> RecoveryResult:
        try:
            with self._store.transaction() as conn:
                account = self._store.get_account_by_email(email, conn=conn)
                if account is None:
                    raise NotFoundError("User with this email does not exist.")

                now = self._clock_ms()
                existing = self._store.get_recovery_code(account.id, conn=conn, for_update=True)
                if existing is not None and existing.is_active(now):
                    conn.rollback()
                    return RecoveryResult(RecoveryStatus.ALREADY_ACTIVE, ALREADY_ACTIVE_MESSAGE)

                code = self._generate()
                expires_at = now + self._ttl_ms
                if existing is None:
                    try:
                        self._store.create_recovery_code(
                            RecoveryCode(account_id=account.id, code=code, expires_at=expires_at), conn=conn
                        )
                    except ConflictError:
                        conn.rollback()
                        logger.info("Concurrent recovery request for account id=%s lost the race", account.id)
                        return RecoveryResult(RecoveryStatus.ALREADY_ACTIVE, ALREADY_ACTIVE_MESSAGE)
                    status = RecoveryStatus.SENT
                else:
                    renewed = self._store.renew_recovery_code_if_expired(
                        account.id, code, expires_at, now, conn=conn
                    )
                    if not renewed:
                        conn.rollback()
                        logger.info("Concurrent recovery renewal for account id=%s lost the race", account.id)
                        return RecoveryResult(RecoveryStatus.ALREADY_ACTIVE, ALREADY_ACTIVE_MESSAGE)
                    status = RecoveryStatus.RENEWED

                self._notifications.queue_password_recovery_code(email, code, account.username)
                return RecoveryResult(status, CODE_SENT_MESSAGE)
        except Exception as exc:
            logger.error("request_recovery rolled back: %s", exc)
            raise

    def reset_password(self, email: str, presented_code: str, new_password: str) -> str:
        """Set a new password using the account's recovery code.

        Checks run in a fixed order: account, code row, code value, expiry.
        A wrong code is reported as a conflict even when it is also expired.
        The password update and the code deletion commit together.
        """
        try:
            with self._store.transaction() as conn:
                account = self._store.get_account_by_email(email, conn=conn)
                if account is None:
                    raise NotFoundError("User with this email does not exist.")

                record = self._store.get_recovery_code(account.id, conn=conn, for_update=True)
                if record is None:
                    raise NotFoundError("No reset code found.")
                if not hmac.compare_digest(record.code.encode("utf-8"), presented_code.encode("utf-8")):
                    raise ConflictError("The code is incorrect.")
                if not record.is_active(self._clock_ms()):
                    raise GoneError("Reset code has expired.")

                self._store.update_account(account.id, hashed_password=hash_password(new_password), conn=conn)
                self._store.delete_recovery_code(account.id, conn=conn)
        except Exception as exc:
            logger.error("reset_password rolled back: %s", exc)
            raise
        logger.info("Password reset completed for account id=%s", account.id)
        return PASSWORD_UPDATED_MESSAGE
