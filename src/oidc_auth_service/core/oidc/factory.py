"""OIDC component factory.

Selects and instantiates the login components based on settings.
Components are process-wide: the nonce store in particular must be shared
by the login-initiation and callback paths.
"""

import logging
from typing import Optional

from oidc_auth_service.config.settings import get_settings
from oidc_auth_service.core.oidc.callback import CallbackOrchestrator
from oidc_auth_service.core.oidc.login import LoginInitiator
from oidc_auth_service.core.oidc.nonce_store import (
    InMemoryNonceStore,
    NonceStore,
    RedisNonceStore,
)
from oidc_auth_service.core.oidc.provider import OIDCProviderClient
from oidc_auth_service.infrastructure.config_store import (
    OIDCConfigStore,
    RedisConfigStore,
    SettingsConfigStore,
)
from oidc_auth_service.infrastructure.redis.client import get_redis_client

logger = logging.getLogger(__name__)

# Global instances (initialized on first call)
_nonce_store: Optional[NonceStore] = None
_config_store: Optional[OIDCConfigStore] = None
_provider_client: Optional[OIDCProviderClient] = None


async def get_nonce_store() -> NonceStore:
    """Get the configured nonce store.

    Backend is selected via OIDC_NONCE_BACKEND:
    - memory: per-process store (default, single instance only)
    - redis: shared store for multi-instance deployments

    Raises:
        ValueError: If OIDC_NONCE_BACKEND is invalid
    """
    global _nonce_store

    if _nonce_store is not None:
        return _nonce_store

    settings = get_settings()
    mode = settings.oidc_nonce_backend.lower()
    logger.info(f"Initializing OIDC nonce store: {mode}")

    if mode == "memory":
        _nonce_store = InMemoryNonceStore(
            ttl_seconds=settings.oidc_nonce_ttl_seconds,
            max_entries=settings.oidc_nonce_max_entries,
        )
    elif mode == "redis":
        redis_client = await get_redis_client()
        _nonce_store = RedisNonceStore(
            redis_client.get_client(), ttl_seconds=settings.oidc_nonce_ttl_seconds
        )
    else:
        raise ValueError(
            f"Unknown OIDC_NONCE_BACKEND: {mode}. "
            f"Valid options: memory, redis"
        )

    return _nonce_store


async def get_config_store() -> OIDCConfigStore:
    """Get the configured OIDC config store.

    Backend is selected via OIDC_CONFIG_BACKEND:
    - env: configuration from environment variables (default)
    - redis: JSON documents in Redis

    Raises:
        ValueError: If OIDC_CONFIG_BACKEND is invalid
    """
    global _config_store

    if _config_store is not None:
        return _config_store

    settings = get_settings()
    mode = settings.oidc_config_backend.lower()
    logger.info(f"Initializing OIDC config store: {mode}")

    if mode == "env":
        _config_store = SettingsConfigStore(settings)
    elif mode == "redis":
        redis_client = await get_redis_client()
        _config_store = RedisConfigStore(redis_client.get_client())
    else:
        raise ValueError(
            f"Unknown OIDC_CONFIG_BACKEND: {mode}. "
            f"Valid options: env, redis"
        )

    return _config_store


def get_provider_client() -> OIDCProviderClient:
    """Get the shared provider client (keeps discovery and JWKS caches)"""
    global _provider_client

    if _provider_client is None:
        _provider_client = OIDCProviderClient(timeout=get_settings().oidc_http_timeout_seconds)
    return _provider_client


async def get_callback_orchestrator() -> CallbackOrchestrator:
    """Build a callback orchestrator from the shared components"""
    return CallbackOrchestrator(
        config_store=await get_config_store(),
        provider_client=get_provider_client(),
        nonce_store=await get_nonce_store(),
        deadline=get_settings().oidc_callback_deadline_seconds,
    )


async def get_login_initiator() -> LoginInitiator:
    """Build a login initiator from the shared components"""
    return LoginInitiator(
        config_store=await get_config_store(),
        provider_client=get_provider_client(),
        nonce_store=await get_nonce_store(),
    )


def reset_components() -> None:
    """Reset the global component instances (for testing)."""
    global _nonce_store, _config_store, _provider_client
    _nonce_store = None
    _config_store = None
    _provider_client = None
