"""
auth/sessions.py -- Login, refresh, logout and refresh-token validation.

A device is the triple (account_id, ip_address, user_agent). Each device has
its own session row holding the fingerprint of its current refresh token, so
the same account in two browsers has two independently revocable sessions.

login() and refresh() share one rotation path: they differ only in which
guard admitted the caller (password vs. verified refresh token), and that is
the transport's business. Both issue a fresh pair and replace the device's
fingerprint in one atomic upsert, which invalidates the previous refresh
token for that device. refresh() also clears the row whose fingerprint
matched the cookie when the caller arrives from a different device key.
"""

from __future__ import annotations

import logging

from auth.hashing import TokenFingerprinter
from auth.models import Account, DeviceSession, IssuedSession, TokenKind
from auth.store import CredentialStore
from auth.tokens import TokenIssuer
from core.errors import NotFoundError, UnauthorizedError

logger = logging.getLogger("authkeep.auth.sessions")


class SessionManager:
    def __init__(self, store: CredentialStore, issuer: TokenIssuer, fingerprinter: TokenFingerprinter) -> None:
        self._store = store
        self._issuer = issuer
        self._fingerprinter = fingerprinter

    def login(self, account_id: int, ip_address: str, user_agent: str) -> IssuedSession:
        issued = self._rotate(account_id, ip_address, user_agent)
        logger.info("Session opened for account id=%s", account_id)
        return issued

    def refresh(self, presented: DeviceSession, ip_address: str, user_agent: str) -> IssuedSession:
        """Rotate the pair for the session whose fingerprint matched the cookie.

        When the caller's (ip, user agent) differs from the matched row, the
        matched row is cleared in the same transaction so the presented token
        stops working there too.
        """
        issued = self._rotate(presented.account_id, ip_address, user_agent, previous=presented)
        logger.info("Session rotated for account id=%s", presented.account_id)
        return issued

    def _rotate(
        self,
        account_id: int,
        ip_address: str,
        user_agent: str,
        previous: DeviceSession | None = None,
    ) -> IssuedSession:
        pair = self._issuer.issue(account_id)
        fingerprint = self._fingerprinter.fingerprint(pair.refresh_token)
        with self._store.transaction() as conn:
            if previous is not None and (previous.ip_address, previous.user_agent) != (ip_address, user_agent):
                self._store.clear_session_token(
                    previous.account_id, previous.ip_address, previous.user_agent, conn=conn
                )
            self._store.upsert_session(account_id, ip_address, user_agent, fingerprint, conn=conn)
        return IssuedSession(
            account_id=account_id,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    def validate_refresh(self, account_id: int, presented_token: str) -> DeviceSession:
        """Check a signature-verified refresh token against the stored fingerprints.

        Returns the device session holding the matching fingerprint. Raises
        NotFoundError when the account has no session at all, and
        UnauthorizedError when no device holds a matching, non-null
        fingerprint (logged out, rotated away, or never issued here).
        """
        sessions = self._store.list_sessions(account_id)
        if not sessions:
            raise NotFoundError(f"Refresh token with user_id:{account_id} not found")
        for session in sessions:
            if self._fingerprinter.matches(presented_token, session.hashed_refresh_token):
                return session
        logger.error("validate_refresh: refresh token mismatch for account id=%s", account_id)
        raise UnauthorizedError("Invalid Refresh Token")

    def logout(self, account_id: int, ip_address: str, user_agent: str) -> None:
        """Clear the device's refresh fingerprint. Calling it again is a no-op."""
        with self._store.transaction() as conn:
            cleared = self._store.clear_session_token(account_id, ip_address, user_agent, conn=conn)
        if not cleared:
            logger.debug("Logout for account id=%s found no session on this device", account_id)

    def authenticate_access(self, access_token: str) -> Account:
        """Resolve a Bearer access token to its account."""
        account_id = self._issuer.verify(access_token, TokenKind.ACCESS)
        account = self._store.get_account_by_id(account_id)
        if account is None:
            raise UnauthorizedError("User not found!")
        return account
