"""OpenID Connect provider client.

Wraps every call made to the external identity provider:
- Discovery (.well-known/openid-configuration)
- Authorization code exchange (token endpoint)
- ID token verification (JWKS signature, issuer, audience, expiry)
- User-info retrieval

Discovery metadata and JWKS are cached per provider. Cached keys are only
used to check signatures, so a stale cache never skips a check. A token whose
signature matches no cached key and whose key id is unknown or absent forces
one JWKS refresh.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from jose import jwk, jws, jwt
from jose.exceptions import JOSEError, JWSError

from oidc_auth_service.core.oidc.errors import (
    CodeExchangeFailed,
    ProviderMisconfigured,
    ProviderUnreachable,
    TokenVerificationFailed,
    UserInfoFetchFailed,
)
from oidc_auth_service.domain.models import OIDCConfig, TokenSet

logger = logging.getLogger(__name__)

_REQUIRED_METADATA = ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri")

# JWK key type for each JWS algorithm family
_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC"}


@dataclass(frozen=True)
class ProviderHandle:
    """Discovered provider endpoints"""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any]) -> "ProviderHandle":
        return cls(
            issuer=metadata["issuer"],
            authorization_endpoint=metadata["authorization_endpoint"],
            token_endpoint=metadata["token_endpoint"],
            jwks_uri=metadata["jwks_uri"],
            userinfo_endpoint=metadata.get("userinfo_endpoint"),
            metadata=metadata,
        )


class OIDCProviderClient:
    """Client for an external OpenID Connect provider.

    Example:
        client = OIDCProviderClient(timeout=10.0)
        handle = await client.discover(config)
        tokens = await client.exchange_code(handle, config, code)
        claims = await client.verify_id_token(handle, config, tokens.id_token)
        user_info = await client.fetch_user_info(handle, tokens)
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        algorithms: tuple[str, ...] = ("RS256",),
    ):
        """Initialize provider client.

        Args:
            timeout: Timeout applied to each HTTP call (seconds)
            transport: Optional httpx transport (used for tests)
            algorithms: Accepted ID token signing algorithms
        """
        self.timeout = timeout
        self.algorithms = algorithms
        self._transport = transport

        self._discovery: dict[str, ProviderHandle] = {}
        self._jwks: dict[str, dict] = {}

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def discover(self, config: OIDCConfig) -> ProviderHandle:
        """Fetch the provider discovery document.

        Raises:
            ProviderUnreachable: If the document cannot be fetched
            ProviderMisconfigured: If the document is malformed or its issuer
                does not match the configured discovery URL
        """
        cached = self._discovery.get(config.discovery_url)
        if cached is not None:
            return cached

        discovery_url = f"{config.discovery_url}/.well-known/openid-configuration"
        try:
            async with self._http_client() as client:
                response = await client.get(discovery_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"OIDC discovery failed for {discovery_url}: {e}")
            raise ProviderUnreachable(f"discovery failed: {e}") from e

        try:
            metadata = response.json()
        except ValueError as e:
            raise ProviderMisconfigured("discovery document is not valid JSON") from e
        if not isinstance(metadata, dict):
            raise ProviderMisconfigured("discovery document is not a JSON object")

        missing = [key for key in _REQUIRED_METADATA if not metadata.get(key)]
        if missing:
            raise ProviderMisconfigured(f"discovery document missing: {', '.join(missing)}")

        if str(metadata["issuer"]).rstrip("/") != config.discovery_url:
            raise ProviderMisconfigured(
                f"issuer {metadata['issuer']!r} does not match {config.discovery_url!r}"
            )

        handle = ProviderHandle.from_metadata(metadata)
        self._discovery[config.discovery_url] = handle
        logger.info(f"OIDC discovery loaded from {discovery_url}")
        return handle

    def authorization_url(self, handle: ProviderHandle, config: OIDCConfig, nonce: str) -> str:
        """Build the provider authorization URL for a new login"""
        params = {
            "client_id": config.client_id,
            "response_type": "code",
            "scope": " ".join(config.scopes),
            "redirect_uri": config.redirect_url,
            "nonce": nonce,
        }
        separator = "&" if "?" in handle.authorization_endpoint else "?"
        return f"{handle.authorization_endpoint}{separator}{urlencode(params)}"

    async def exchange_code(self, handle: ProviderHandle, config: OIDCConfig, code: str) -> TokenSet:
        """Exchange an authorization code for tokens.

        Raises:
            CodeExchangeFailed: On transport errors, provider rejections or
                a response without an ID token
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_url,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }

        try:
            async with self._http_client() as client:
                response = await client.post(
                    handle.token_endpoint,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"OIDC token exchange request failed: {e}")
            raise CodeExchangeFailed(f"token endpoint unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200 or not isinstance(body, dict) or "error" in body:
            error = body.get("error") if isinstance(body, dict) else None
            logger.error(
                f"OIDC token exchange failed: status={response.status_code} error={error}"
            )
            raise CodeExchangeFailed(
                f"token endpoint returned {response.status_code}: {error or 'unexpected response'}"
            )

        try:
            return TokenSet.model_validate(body)
        except ValueError as e:
            raise CodeExchangeFailed("token response missing access_token or id_token") from e

    async def _get_jwks(self, handle: ProviderHandle, force: bool = False) -> dict:
        """Fetch JSON Web Key Set for token validation."""
        if not force and handle.jwks_uri in self._jwks:
            return self._jwks[handle.jwks_uri]

        try:
            async with self._http_client() as client:
                response = await client.get(handle.jwks_uri)
                response.raise_for_status()
                jwks = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TokenVerificationFailed(f"could not load JWKS: {e}") from e

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise TokenVerificationFailed("JWKS document has no keys")

        self._jwks[handle.jwks_uri] = jwks
        logger.info(f"OIDC JWKS loaded from {handle.jwks_uri}")
        return jwks

    async def verify_id_token(
        self, handle: ProviderHandle, config: OIDCConfig, raw_id_token: str
    ) -> dict[str, Any]:
        """Verify an ID token and return its claims.

        Checks signature, issuer, audience (client ID) and expiry. The
        returned claims always include the nonce.

        Raises:
            TokenVerificationFailed: If any check fails
        """
        try:
            header = jwt.get_unverified_header(raw_id_token)
        except JOSEError as e:
            raise TokenVerificationFailed(f"malformed ID token: {e}") from e

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise TokenVerificationFailed(f"unsupported signing algorithm {alg!r}")
        kid = header.get("kid")

        cached = handle.jwks_uri in self._jwks
        keys = self._signing_keys(await self._get_jwks(handle), alg, kid)
        if cached and (not kid or not keys) and not self._signature_matches(raw_id_token, keys):
            # Provider may have rotated its keys
            keys = self._signing_keys(await self._get_jwks(handle, force=True), alg, kid)

        try:
            claims = jwt.decode(
                raw_id_token,
                keys,
                algorithms=[alg],
                issuer=handle.issuer,
                audience=config.client_id,
                options={
                    "verify_at_hash": False,
                    "require_exp": True,
                    "require_iss": True,
                    "require_aud": True,
                },
            )
        except JOSEError as e:
            logger.warning(f"OIDC ID token verification failed: {e}")
            raise TokenVerificationFailed(f"invalid ID token: {e}") from e

        if not isinstance(claims.get("nonce"), str):
            raise TokenVerificationFailed("ID token has no nonce claim")

        return claims

    @staticmethod
    def _signing_keys(jwks: dict, alg: str, kid: Optional[str]) -> list:
        """Build key objects for the JWKS entries that can check an `alg` signature.

        Entries with another key id, key type, algorithm or use are skipped,
        as are entries that cannot be loaded.
        """
        kty = _KEY_TYPES.get(alg[:2])
        keys = []
        for key_data in jwks["keys"]:
            if not isinstance(key_data, dict):
                continue
            if kid and key_data.get("kid") != kid:
                continue
            if key_data.get("kty") != kty or key_data.get("alg", alg) != alg:
                continue
            if key_data.get("use", "sig") != "sig":
                continue
            try:
                keys.append(jwk.construct(key_data, alg))
            except (JOSEError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping unusable JWKS key {key_data.get('kid')!r}: {e}")
        return keys

    def _signature_matches(self, raw_id_token: str, keys: list) -> bool:
        try:
            jws.verify(raw_id_token, keys, algorithms=list(self.algorithms))
        except JWSError:
            return False
        return True

    async def fetch_user_info(self, handle: ProviderHandle, token_set: TokenSet) -> dict[str, Any]:
        """Fetch user-info claims with the access token.

        Raises:
            UserInfoFetchFailed: On transport or authorization errors
        """
        if not handle.userinfo_endpoint:
            raise UserInfoFetchFailed("provider does not advertise a userinfo endpoint")

        try:
            async with self._http_client() as client:
                response = await client.get(
                    handle.userinfo_endpoint,
                    headers={
                        "Authorization": f"Bearer {token_set.access_token}",
                        "Accept": "application/json",
                    },
                )
                response.raise_for_status()
                user_info = response.json()
        except httpx.HTTPError as e:
            logger.error(f"OIDC userinfo request failed: {e}")
            raise UserInfoFetchFailed(f"userinfo request failed: {e}") from e
        except ValueError as e:
            raise UserInfoFetchFailed("userinfo response is not valid JSON") from e

        if not isinstance(user_info, dict):
            raise UserInfoFetchFailed("userinfo response is not a JSON object")
        return user_info
