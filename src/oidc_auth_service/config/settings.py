"""Configuration Settings for OIDC Auth Service

Manages environment variables and application configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "oidc-auth-service"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # CORS configuration
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    # Backends: where provider settings and pending login nonces live
    oidc_config_backend: str = "env"  # env or redis
    oidc_nonce_backend: str = "memory"  # memory or redis

    # Login state
    oidc_nonce_ttl_seconds: int = 300  # 5 minutes
    oidc_nonce_max_entries: int = 10000

    # Provider calls
    oidc_http_timeout_seconds: float = 10.0
    oidc_callback_deadline_seconds: Optional[float] = 30.0

    # Provider configuration (env backend)
    oidc_discovery_url: Optional[str] = None
    oidc_client_id: Optional[str] = None
    oidc_client_secret: Optional[str] = None
    oidc_redirect_url: Optional[str] = None
    oidc_scopes: str = "openid email profile"
    oidc_ttl: int = 3600  # 1 hour
    oidc_max_ttl: int = 86400  # 24 hours

    # Claims mapping (env backend)
    oidc_username_claim: str = "sub"
    oidc_display_name_claim: Optional[str] = "name"
    oidc_groups_claim: Optional[str] = "groups"
    oidc_policies_claim: Optional[str] = None
    oidc_default_policies: list[str] = ["default"]
    oidc_metadata_claims: dict[str, str] = {}

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
