"""OIDC login initiation.

Starts a login by storing a fresh nonce for the client and returning the
provider authorization URL that carries it.
"""

import logging
import secrets

from oidc_auth_service.core.oidc.errors import CallbackError, FailureReason, ProviderError
from oidc_auth_service.core.oidc.nonce_store import NonceStore
from oidc_auth_service.core.oidc.provider import OIDCProviderClient
from oidc_auth_service.infrastructure.config_store import OIDCConfigStore

logger = logging.getLogger(__name__)


class LoginInitiator:
    """Begins the authorization-code flow for a client."""

    def __init__(
        self,
        config_store: OIDCConfigStore,
        provider_client: OIDCProviderClient,
        nonce_store: NonceStore,
    ):
        self.config_store = config_store
        self.provider_client = provider_client
        self.nonce_store = nonce_store

    async def begin_login(self, client_key: str) -> str:
        """Create a pending login and return the authorization URL.

        Args:
            client_key: Remote address of the client starting the login

        Returns:
            Provider authorization URL to redirect the browser to

        Raises:
            CallbackError: If OIDC is not configured or discovery fails
        """
        config = await self.config_store.get_config()
        if config is None:
            raise CallbackError(
                FailureReason.CONFIG_MISSING, "auth_url", "could not load OIDC configuration"
            )

        try:
            handle = await self.provider_client.discover(config)
        except ProviderError as e:
            logger.error(f"OIDC login initiation failed: {e}")
            raise CallbackError(
                FailureReason.PROVIDER_ERROR, "auth_url", f"error getting provider: {e}"
            ) from e

        nonce = secrets.token_urlsafe(32)
        await self.nonce_store.put(client_key, nonce)
        logger.info(f"OIDC login started for {client_key}")
        return self.provider_client.authorization_url(handle, config, nonce)
