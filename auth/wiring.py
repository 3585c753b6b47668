"""
auth/wiring.py -- Composition root for the credential core.

The object graph is built once at process start (api/main.py lifespan, or a
test fixture) by passing each component its collaborators explicitly. No
component looks up configuration or siblings on its own.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.accounts import AccountService
from auth.hashing import TokenFingerprinter
from auth.identity import IdentityReconciler
from auth.notifications import NotificationPublisher, NotificationService
from auth.recovery import RecoveryManager
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import TokenIssuer
from auth.validator import CredentialValidator
from core.config import Settings


@dataclass
class AuthServices:
    store: CredentialStore
    issuer: TokenIssuer
    validator: CredentialValidator
    sessions: SessionManager
    recovery: RecoveryManager
    identity: IdentityReconciler
    accounts: AccountService


def build_auth_services(
    settings: Settings,
    store: CredentialStore,
    publisher: NotificationPublisher,
    **recovery_overrides,
) -> AuthServices:
    """Wire every component from settings, a store and a publisher.

    recovery_overrides are passed to RecoveryManager (clock_ms,
    code_generator) so tests can control time and codes.
    """
    issuer = TokenIssuer(settings)
    notifications = NotificationService(publisher)
    return AuthServices(
        store=store,
        issuer=issuer,
        validator=CredentialValidator(store),
        sessions=SessionManager(store, issuer, TokenFingerprinter(settings.secret_key)),
        recovery=RecoveryManager(
            store,
            notifications,
            code_ttl_seconds=settings.recovery_code_ttl_seconds,
            **recovery_overrides,
        ),
        identity=IdentityReconciler(store, notifications),
        accounts=AccountService(store, notifications),
    )
