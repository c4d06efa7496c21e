"""OIDC login callback.

Turns an untrusted authorization code into an AuthorizationGrant. The
callback runs a fixed sequence of steps and stops at the first failure:

    LOAD_CONFIG -> DISCOVER -> EXCHANGE_CODE -> VERIFY_NONCE
        -> FETCH_USER_INFO -> MAP_CLAIMS -> SUCCESS

VERIFY_NONCE always verifies the ID token before its nonce claim is looked
at, then consumes the pending nonce stored for the client and requires an
exact match.
"""

import asyncio
import hmac
import logging
from enum import Enum
from typing import Any, Optional

from oidc_auth_service.core.oidc.claims import map_claims
from oidc_auth_service.core.oidc.errors import (
    CallbackError,
    ClaimsMappingError,
    FailureReason,
    ProviderError,
)
from oidc_auth_service.core.oidc.nonce_store import NonceStore
from oidc_auth_service.core.oidc.provider import OIDCProviderClient
from oidc_auth_service.domain.models import AuthorizationGrant, ExchangeResult
from oidc_auth_service.infrastructure.config_store import OIDCConfigStore

logger = logging.getLogger(__name__)


class CallbackStep(Enum):
    """Callback steps, in execution order"""
    LOAD_CONFIG = "load_config"
    DISCOVER = "discover"
    EXCHANGE_CODE = "exchange_code"
    VERIFY_NONCE = "verify_nonce"
    FETCH_USER_INFO = "fetch_user_info"
    MAP_CLAIMS = "map_claims"
    SUCCESS = "success"


class CallbackOrchestrator:
    """Completes an OIDC authorization-code login.

    One instance serves all requests; per-request data lives in local
    variables and an ExchangeResult that is dropped when the call returns.
    """

    def __init__(
        self,
        config_store: OIDCConfigStore,
        provider_client: OIDCProviderClient,
        nonce_store: NonceStore,
        deadline: Optional[float] = None,
    ):
        """Initialize callback orchestrator.

        Args:
            config_store: Read-only source of provider and mapping config
            provider_client: Client for the identity provider
            nonce_store: Pending login nonces
            deadline: Optional overall time limit for one callback (seconds)
        """
        self.config_store = config_store
        self.provider_client = provider_client
        self.nonce_store = nonce_store
        self.deadline = deadline

    async def handle_callback(self, code: Any, client_key: str) -> AuthorizationGrant:
        """Run the callback for one browser redirect.

        Args:
            code: Authorization code from the redirect query
            client_key: Remote address of the client

        Returns:
            AuthorizationGrant for the authenticated user

        Raises:
            CallbackError: If any step fails, or the call was cancelled or
                ran past its deadline

        A cancellation of the calling task is reported as a CANCELLED
        CallbackError and withdrawn from the task, so enclosing timeouts and
        task groups see the CallbackError rather than a pending cancel.
        """
        try:
            async with asyncio.timeout(self.deadline):
                return await self._run(code, client_key)
        except TimeoutError as e:
            logger.warning(f"OIDC callback for {client_key} exceeded {self.deadline}s deadline")
            raise CallbackError(FailureReason.CANCELLED, None, "deadline exceeded") from e
        except asyncio.CancelledError as e:
            logger.warning(f"OIDC callback for {client_key} was cancelled")
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            raise CallbackError(FailureReason.CANCELLED, None, "cancelled by caller") from e

    async def _run(self, code: Any, client_key: str) -> AuthorizationGrant:
        step = CallbackStep.LOAD_CONFIG
        self._enter(step, client_key)
        config = await self.config_store.get_config()
        claims_config = await self.config_store.get_claims_mapping()
        if config is None:
            raise self._fail(step, FailureReason.CONFIG_MISSING, "could not load OIDC configuration")
        if claims_config is None:
            raise self._fail(
                step, FailureReason.CONFIG_MISSING, "could not load OIDC mapping configuration"
            )

        step = CallbackStep.DISCOVER
        self._enter(step, client_key)
        try:
            handle = await self.provider_client.discover(config)
        except ProviderError as e:
            raise self._fail(step, FailureReason.PROVIDER_ERROR, f"error getting provider: {e}") from e

        step = CallbackStep.EXCHANGE_CODE
        self._enter(step, client_key)
        if not isinstance(code, str) or not code:
            raise self._fail(step, FailureReason.BAD_REQUEST, "missing or malformed authorization code")
        result = ExchangeResult()
        try:
            result.token_set = await self.provider_client.exchange_code(handle, config, code)
        except ProviderError as e:
            raise self._fail(step, FailureReason.PROVIDER_ERROR, f"failed to exchange code: {e}") from e

        step = CallbackStep.VERIFY_NONCE
        self._enter(step, client_key)
        try:
            result.id_token_claims = await self.provider_client.verify_id_token(
                handle, config, result.token_set.id_token
            )
        except ProviderError as e:
            raise self._fail(step, FailureReason.TOKEN_INVALID, f"failed to verify ID token: {e}") from e
        token_nonce = result.id_token_claims.get("nonce")
        if not isinstance(token_nonce, str):
            raise self._fail(step, FailureReason.TOKEN_INVALID, "ID token has no nonce claim")

        expected_nonce, found = await self.nonce_store.pop(client_key)
        if not found:
            raise self._fail(
                step,
                FailureReason.FORGED_OR_EXPIRED_REQUEST,
                f"no pending login for {client_key}, request may be forged or took too long",
            )
        if not hmac.compare_digest(expected_nonce.encode("utf-8"), token_nonce.encode("utf-8")):
            raise self._fail(
                step,
                FailureReason.FORGED_OR_EXPIRED_REQUEST,
                f"nonce mismatch for {client_key}, request may be forged",
            )

        step = CallbackStep.FETCH_USER_INFO
        self._enter(step, client_key)
        try:
            result.user_info = await self.provider_client.fetch_user_info(handle, result.token_set)
        except ProviderError as e:
            raise self._fail(step, FailureReason.PROVIDER_ERROR, f"failed to fetch user info: {e}") from e

        step = CallbackStep.MAP_CLAIMS
        self._enter(step, client_key)
        try:
            user = map_claims(result.user_info, claims_config)
        except ClaimsMappingError as e:
            raise self._fail(step, FailureReason.CLAIMS_MAPPING_ERROR, f"failed to map user claims: {e}") from e

        self._enter(CallbackStep.SUCCESS, client_key)
        grant = AuthorizationGrant.from_user_data(user, config)
        logger.info(
            f"OIDC login succeeded for {user.username}",
            extra={"username": user.username, "client_key": client_key, "groups": len(user.groups)},
        )
        return grant

    @staticmethod
    def _enter(step: CallbackStep, client_key: str) -> None:
        logger.debug(f"OIDC callback step {step.value}", extra={"client_key": client_key})

    @staticmethod
    def _fail(step: CallbackStep, reason: FailureReason, detail: str) -> CallbackError:
        log = logger.error
        if reason in (FailureReason.TOKEN_INVALID, FailureReason.FORGED_OR_EXPIRED_REQUEST,
                      FailureReason.BAD_REQUEST):
            log = logger.warning
        log(
            f"OIDC callback failed at {step.value}: {detail}",
            extra={"step": step.value, "reason": reason.value},
        )
        return CallbackError(reason, step.value, detail)
