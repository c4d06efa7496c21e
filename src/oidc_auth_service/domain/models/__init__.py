"""Domain models for OIDC Auth Service"""

from oidc_auth_service.domain.models.api_oidc import (
    AuthURLResponse,
    CallbackResponse,
    OIDCError,
)
from oidc_auth_service.domain.models.oidc import (
    Alias,
    AuthorizationGrant,
    ClaimsMappingConfig,
    ExchangeResult,
    OIDCConfig,
    TokenSet,
    UserData,
)

__all__ = [
    # OIDC models
    "OIDCConfig",
    "ClaimsMappingConfig",
    "TokenSet",
    "ExchangeResult",
    "UserData",
    "Alias",
    "AuthorizationGrant",
    # API models
    "AuthURLResponse",
    "CallbackResponse",
    "OIDCError",
]
