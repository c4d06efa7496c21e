"""
Pytest configuration and fixtures for OIDC login tests.

Provides fixtures for:
- An RSA signing key and matching JWKS
- ID token minting
- A fake identity provider served through httpx.MockTransport
- Provider and claims mapping configuration
"""

import time
from typing import Any, Callable, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwk, jwt

from oidc_auth_service.core.oidc.provider import OIDCProviderClient
from oidc_auth_service.domain.models import ClaimsMappingConfig, OIDCConfig

ISSUER = "https://idp.example.com"
CLIENT_ID = "test-client"
CLIENT_SECRET = "test-secret"
REDIRECT_URL = "https://auth.example.com/api/v1/oidc/callback"
KEY_ID = "test-key"


def _generate_key_pair() -> tuple[bytes, bytes]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def _public_jwk(public_pem: bytes, kid: str) -> dict:
    key = jwk.construct(public_pem, "RS256").to_dict()
    key["kid"] = kid
    key["use"] = "sig"
    return key


@pytest.fixture(scope="session")
def signing_keys() -> tuple[bytes, bytes]:
    """RSA key pair (private PEM, public PEM) used by the fake provider"""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def other_signing_keys() -> tuple[bytes, bytes]:
    """A key pair the provider does not publish"""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def jwks(signing_keys) -> dict:
    """JWKS published by the fake provider"""
    return {"keys": [_public_jwk(signing_keys[1], KEY_ID)]}


@pytest.fixture(scope="session")
def ec_public_jwk() -> dict:
    """EC key published without an alg member, as in mixed EC/RSA key sets"""
    public_pem = ec.generate_private_key(ec.SECP256R1()).public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key = jwk.construct(public_pem, "ES256").to_dict()
    key.pop("alg", None)
    key["kid"] = "ec-key"
    return key


@pytest.fixture
def make_id_token(signing_keys) -> Callable[..., str]:
    """Mint a signed ID token. Keyword arguments override claims;
    a claim set to None is removed, and kid=None leaves out the key id."""

    def _make(
        private_pem: Optional[bytes] = None,
        kid: Optional[str] = KEY_ID,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "sub": "user-123",
            "iat": now,
            "exp": now + 300,
            "nonce": "abc123",
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims,
            private_pem or signing_keys[0],
            algorithm="RS256",
            headers={"kid": kid} if kid else None,
        )

    return _make


class FakeProvider:
    """In-process OIDC provider

    Serves discovery, token, JWKS and userinfo endpoints. Tests adjust the
    attributes to simulate provider behaviour and inspect ``requests``.
    """

    def __init__(self, jwks: dict, id_token: str):
        self.jwks = jwks
        self.metadata = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
        }
        self.discovery_status = 200
        self.token_status = 200
        self.token_response: dict = {
            "access_token": "access-token-1",
            "token_type": "Bearer",
            "expires_in": 3600,
            "id_token": id_token,
        }
        self.userinfo_status = 200
        self.userinfo_response: Any = {
            "sub": "user-123",
            "email": "jane@example.com",
            "name": "Jane Doe",
            "groups": ["ops", "admins", "dev"],
        }
        self.requests: list[httpx.Request] = []

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def token_form(self) -> dict[str, str]:
        for request in self.requests:
            if request.url.path == "/token":
                return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        raise AssertionError("token endpoint was not called")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/.well-known/openid-configuration":
            return httpx.Response(self.discovery_status, json=self.metadata)
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_response)
        if path == "/jwks":
            return httpx.Response(200, json=self.jwks)
        if path == "/userinfo":
            if request.headers.get("Authorization") != f"Bearer {self.token_response.get('access_token')}":
                return httpx.Response(401, json={"error": "invalid_token"})
            if isinstance(self.userinfo_response, (dict, list)):
                return httpx.Response(self.userinfo_status, json=self.userinfo_response)
            return httpx.Response(self.userinfo_status, content=self.userinfo_response)
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_provider(jwks, make_id_token) -> FakeProvider:
    """Fake identity provider issuing an ID token with nonce 'abc123'"""
    return FakeProvider(jwks, make_id_token())


@pytest.fixture
def provider_client(fake_provider) -> OIDCProviderClient:
    """Provider client wired to the fake provider"""
    return OIDCProviderClient(timeout=5.0, transport=fake_provider.transport())


@pytest.fixture
def oidc_config() -> OIDCConfig:
    """Provider configuration matching the fake provider"""
    return OIDCConfig(
        discovery_url=ISSUER,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_url=REDIRECT_URL,
        ttl=3600,
        max_ttl=7200,
    )


@pytest.fixture
def claims_config() -> ClaimsMappingConfig:
    """Claims mapping used by most tests"""
    return ClaimsMappingConfig(
        username_claim="email",
        display_name_claim="name",
        groups_claim="groups",
        default_policies=["default"],
        metadata={"subject": "sub"},
    )


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
