"""Errors raised during the OIDC login flow.

Provider errors and claims mapping errors are raised by the lower layers and
wrapped into a CallbackError by the callback orchestrator.
"""

from enum import Enum
from typing import Optional


class ProviderError(Exception):
    """Identity provider call failed."""
    pass


class ProviderUnreachable(ProviderError):
    """Discovery document could not be fetched."""
    pass


class ProviderMisconfigured(ProviderError):
    """Discovery metadata is malformed or does not match the configuration."""
    pass


class CodeExchangeFailed(ProviderError):
    """Authorization code could not be exchanged for tokens."""
    pass


class TokenVerificationFailed(ProviderError):
    """ID token signature, issuer, audience or expiry check failed."""
    pass


class UserInfoFetchFailed(ProviderError):
    """User-info endpoint call failed."""
    pass


class ClaimsMappingError(Exception):
    """Provider claims could not be mapped to a user."""
    pass


class MissingRequiredClaim(ClaimsMappingError):
    """A required claim (the username) is absent or empty."""

    def __init__(self, claim: str):
        super().__init__(f"required claim '{claim}' is missing or empty")
        self.claim = claim


class InvalidClaim(ClaimsMappingError):
    """A claim is present but has an unusable type."""

    def __init__(self, claim: str, value_type: str):
        super().__init__(f"claim '{claim}' has unsupported type {value_type}")
        self.claim = claim


class FailureReason(Enum):
    """Why a login callback was rejected"""
    CONFIG_MISSING = "config_missing"
    BAD_REQUEST = "bad_request"
    PROVIDER_ERROR = "provider_error"
    TOKEN_INVALID = "token_invalid"
    FORGED_OR_EXPIRED_REQUEST = "forged_or_expired_request"
    CLAIMS_MAPPING_ERROR = "claims_mapping_error"
    CANCELLED = "cancelled"


# Token and nonce failures share one message so the requester cannot tell them apart
_UNVERIFIED_LOGIN_MESSAGE = "The login request could not be verified. Please start the login again."

_PUBLIC_MESSAGES = {
    FailureReason.CONFIG_MISSING: "OIDC login is not configured.",
    FailureReason.BAD_REQUEST: "Missing or malformed authorization code.",
    FailureReason.PROVIDER_ERROR: "The identity provider could not complete the login.",
    FailureReason.TOKEN_INVALID: _UNVERIFIED_LOGIN_MESSAGE,
    FailureReason.FORGED_OR_EXPIRED_REQUEST: _UNVERIFIED_LOGIN_MESSAGE,
    FailureReason.CLAIMS_MAPPING_ERROR: "Your identity could not be mapped to a user.",
    FailureReason.CANCELLED: "The login request timed out or was cancelled.",
}


class CallbackError(Exception):
    """Login callback failed.

    Attributes:
        reason: Failure category
        step: Name of the step that failed
        detail: Internal description (logged, never shown to the requester)
    """

    def __init__(self, reason: FailureReason, step: Optional[str], detail: str):
        super().__init__(f"{step or 'callback'}: {detail}")
        self.reason = reason
        self.step = step
        self.detail = detail

    @property
    def public_message(self) -> str:
        """Message safe to return to the end user"""
        return _PUBLIC_MESSAGES[self.reason]
