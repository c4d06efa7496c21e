"""OIDC Configuration Storage

Purpose: Read-only access to provider settings and claim mapping rules

Backends:
- SettingsConfigStore: built from environment variables (self-hosted default)
- RedisConfigStore: JSON documents managed by an external admin tool

Storage Schema (Redis):
- oidc:config -> {OIDCConfig json}
- oidc:claims_mapping -> {ClaimsMappingConfig json}
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis

from oidc_auth_service.config.settings import Settings
from oidc_auth_service.domain.models import ClaimsMappingConfig, OIDCConfig

logger = logging.getLogger(__name__)


class OIDCConfigStore(ABC):
    """Read-only source of OIDC login configuration.

    Both getters return None when the configuration is absent.
    """

    @abstractmethod
    async def get_config(self) -> Optional[OIDCConfig]:
        pass

    @abstractmethod
    async def get_claims_mapping(self) -> Optional[ClaimsMappingConfig]:
        pass


class SettingsConfigStore(OIDCConfigStore):
    """Configuration taken from application settings.

    Example Configuration:
        OIDC_DISCOVERY_URL=https://accounts.google.com
        OIDC_CLIENT_ID=xxx.apps.googleusercontent.com
        OIDC_CLIENT_SECRET=GOCSPX-xxx
        OIDC_REDIRECT_URL=https://auth.example.com/api/v1/oidc/callback
        OIDC_USERNAME_CLAIM=email
        OIDC_GROUPS_CLAIM=groups
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def get_config(self) -> Optional[OIDCConfig]:
        s = self.settings
        if not (s.oidc_discovery_url and s.oidc_client_id and s.oidc_redirect_url):
            return None

        try:
            return OIDCConfig(
                discovery_url=s.oidc_discovery_url,
                client_id=s.oidc_client_id,
                client_secret=s.oidc_client_secret or "",
                redirect_url=s.oidc_redirect_url,
                scopes=s.oidc_scopes.split(),
                ttl=s.oidc_ttl,
                max_ttl=s.oidc_max_ttl,
            )
        except ValidationError as e:
            logger.error(f"Invalid OIDC configuration in settings: {e}")
            return None

    async def get_claims_mapping(self) -> Optional[ClaimsMappingConfig]:
        s = self.settings
        try:
            return ClaimsMappingConfig(
                username_claim=s.oidc_username_claim,
                display_name_claim=s.oidc_display_name_claim or None,
                groups_claim=s.oidc_groups_claim or None,
                policies_claim=s.oidc_policies_claim or None,
                default_policies=s.oidc_default_policies,
                metadata=s.oidc_metadata_claims,
            )
        except ValidationError as e:
            logger.error(f"Invalid OIDC claims mapping in settings: {e}")
            return None


class RedisConfigStore(OIDCConfigStore):
    """Configuration documents stored in Redis."""

    def __init__(self, redis_client: Redis):
        """Initialize config store

        Args:
            redis_client: Redis connection holding the config documents
        """
        self.redis = redis_client
        self.config_key = "oidc:config"
        self.claims_mapping_key = "oidc:claims_mapping"

    async def _load(self, key: str, model):
        raw = await self.redis.get(key)
        if raw is None:
            logger.debug(f"No OIDC configuration document at {key}")
            return None

        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Invalid OIDC configuration document at {key}: {e}")
            return None

    async def get_config(self) -> Optional[OIDCConfig]:
        return await self._load(self.config_key, OIDCConfig)

    async def get_claims_mapping(self) -> Optional[ClaimsMappingConfig]:
        return await self._load(self.claims_mapping_key, ClaimsMappingConfig)
