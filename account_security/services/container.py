# account_security/services/container.py
import logging
from collections.abc import Callable
from dataclasses import dataclass

from account_security.core.keyed_store import InMemoryKeyedStore, KeyedStore, now_ms
from account_security.services.account_lockout import AttemptTracker
from account_security.services.accounts import AccountStore
from account_security.services.authentication import AuthenticationCoordinator
from account_security.services.credential_verifier import CredentialVerifier
from account_security.services.mfa_service import TotpEngine
from account_security.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class SecurityServices:
    accounts: AccountStore
    store: KeyedStore
    attempts: AttemptTracker
    credentials: CredentialVerifier
    totp: TotpEngine
    sessions: SessionRegistry
    coordinator: AuthenticationCoordinator


def build_services(
    accounts: AccountStore,
    store: KeyedStore | None = None,
    clock: Callable[[], int] = now_ms,
) -> SecurityServices:
    """
    Wire the security services around one keyed store.

    Lockout, 2FA and session state use disjoint key prefixes, so a single
    store instance is shared between them.
    """
    store = store if store is not None else InMemoryKeyedStore(clock=clock)
    attempts = AttemptTracker(store=store, clock=clock)
    credentials = CredentialVerifier(accounts, attempts)
    totp = TotpEngine(store=store, clock=clock)
    sessions = SessionRegistry(store=store, clock=clock)
    coordinator = AuthenticationCoordinator(attempts, credentials, totp, sessions)
    logger.debug(f"Security services built on {type(store).__name__}")
    return SecurityServices(
        accounts=accounts,
        store=store,
        attempts=attempts,
        credentials=credentials,
        totp=totp,
        sessions=sessions,
        coordinator=coordinator,
    )
