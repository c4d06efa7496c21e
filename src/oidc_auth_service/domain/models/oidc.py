"""OIDC Login Data Models

Purpose: Define data structures for the OIDC authorization-code login

Key Components:
- OIDCConfig: Identity provider settings (read-only to the login flow)
- ClaimsMappingConfig: Declarative claim name -> internal field rules
- TokenSet: Raw OAuth2 token endpoint response
- ExchangeResult: Transient per-callback token and claim data
- UserData: Output of the claims mapper
- AuthorizationGrant: Result handed to the host after a successful login
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OIDCConfig(BaseModel):
    """Identity provider configuration

    Attributes:
        discovery_url: Issuer URL used for .well-known discovery
        client_id: OAuth 2.0 client ID (also the expected ID token audience)
        client_secret: OAuth 2.0 client secret
        redirect_url: Callback URL registered with the provider
        scopes: Scopes requested at login
        ttl: Default lease TTL for issued grants (seconds)
        max_ttl: Maximum lease TTL for issued grants (seconds, 0 = unbounded)
    """
    discovery_url: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = ""
    redirect_url: str = Field(..., min_length=1)
    scopes: list[str] = Field(default_factory=lambda: ["openid", "email", "profile"])
    ttl: int = Field(0, ge=0)
    max_ttl: int = Field(0, ge=0)

    @field_validator("discovery_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("scopes")
    @classmethod
    def ensure_openid_scope(cls, v: list[str]) -> list[str]:
        """OIDC requires the openid scope for an ID token to be issued"""
        if "openid" not in v:
            return ["openid", *v]
        return v

    @model_validator(mode="after")
    def check_ttl_bounds(self) -> "OIDCConfig":
        if self.max_ttl and self.ttl > self.max_ttl:
            raise ValueError("ttl cannot be greater than max_ttl")
        return self


class ClaimsMappingConfig(BaseModel):
    """Rules translating provider claims into internal user fields

    Each rule names the source claim for a target field. Claim names may be
    dotted paths into nested objects (e.g. ``realm_access.roles``).

    Attributes:
        username_claim: Claim supplying the username (required at login)
        display_name_claim: Claim supplying the display name
        groups_claim: Claim supplying group memberships
        policies_claim: Claim supplying additional policies
        default_policies: Policies granted to every user
        metadata: Metadata key -> source claim
    """
    username_claim: str = Field("sub", min_length=1)
    display_name_claim: Optional[str] = "name"
    groups_claim: Optional[str] = "groups"
    policies_claim: Optional[str] = None
    default_policies: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)


class TokenSet(BaseModel):
    """Raw token endpoint response

    Unknown fields returned by the provider are kept as extras.
    """
    model_config = ConfigDict(extra="allow")

    access_token: str
    id_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


@dataclass
class ExchangeResult:
    """Transient data gathered during one callback

    Never persisted; scoped to a single callback invocation.
    """
    token_set: Optional[TokenSet] = None
    id_token_claims: dict[str, Any] = field(default_factory=dict)
    user_info: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserData:
    """Internal user record produced by the claims mapper

    Attributes:
        username: Unique username (never empty)
        display_name: Human-readable name
        policies: Granted policy names
        metadata: String metadata propagated from claims
        groups: Group memberships in provider order
    """
    username: str
    display_name: str
    policies: frozenset[str] = frozenset()
    metadata: dict[str, str] = field(default_factory=dict)
    groups: tuple[str, ...] = ()


class Alias(BaseModel):
    """Identity alias known to the host framework"""
    name: str


class AuthorizationGrant(BaseModel):
    """Authorization result for a successful login"""
    display_name: str
    policies: list[str]
    metadata: dict[str, str] = Field(default_factory=dict)
    alias: Alias
    group_aliases: list[Alias] = Field(default_factory=list)
    ttl: int
    max_ttl: int
    renewable: bool = True

    @property
    def alias_name(self) -> str:
        return self.alias.name

    @classmethod
    def from_user_data(cls, user: UserData, config: OIDCConfig) -> "AuthorizationGrant":
        """Assemble the grant from mapped user data and lease settings"""
        return cls(
            display_name=user.display_name,
            policies=sorted(user.policies),
            metadata=dict(user.metadata),
            alias=Alias(name=user.username),
            group_aliases=[Alias(name=group) for group in user.groups],
            ttl=config.ttl,
            max_ttl=config.max_ttl,
            renewable=True,
        )
