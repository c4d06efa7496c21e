"""OpenID Connect authorization-code login.

- claims: provider claims -> internal user
- nonce_store: pending login nonces (CSRF protection)
- provider: discovery, code exchange, ID token verification, userinfo
- callback: the login callback sequence
- login: login initiation
"""

from .callback import CallbackOrchestrator, CallbackStep
from .claims import map_claims
from .errors import CallbackError, FailureReason
from .login import LoginInitiator
from .nonce_store import InMemoryNonceStore, NonceStore, RedisNonceStore
from .provider import OIDCProviderClient, ProviderHandle

__all__ = [
    "CallbackOrchestrator",
    "CallbackStep",
    "CallbackError",
    "FailureReason",
    "LoginInitiator",
    "NonceStore",
    "InMemoryNonceStore",
    "RedisNonceStore",
    "OIDCProviderClient",
    "ProviderHandle",
    "map_claims",
]
