"""OIDC Login Routes

Purpose: FastAPI routes for the OpenID Connect authorization-code login

Key Endpoints:
- GET /oidc/auth_url: Start a login and get the provider authorization URL
- GET /oidc/callback: Complete a login from the provider redirect
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from oidc_auth_service.core.oidc.callback import CallbackOrchestrator
from oidc_auth_service.core.oidc.errors import CallbackError, FailureReason
from oidc_auth_service.core.oidc.factory import get_callback_orchestrator, get_login_initiator
from oidc_auth_service.core.oidc.login import LoginInitiator
from oidc_auth_service.domain.models import AuthURLResponse, CallbackResponse, OIDCError

# Initialize router and logger
router = APIRouter(prefix="/api/v1/oidc", tags=["oidc"])
logger = logging.getLogger(__name__)

_STATUS_CODES = {
    FailureReason.CONFIG_MISSING: 500,
    FailureReason.BAD_REQUEST: 400,
    FailureReason.PROVIDER_ERROR: 502,
    FailureReason.TOKEN_INVALID: 401,
    FailureReason.FORGED_OR_EXPIRED_REQUEST: 401,
    FailureReason.CLAIMS_MAPPING_ERROR: 403,
    FailureReason.CANCELLED: 504,
}


def client_key(request: Request) -> str:
    """Remote address of the connection, used to key pending logins"""
    return request.client.host if request.client else ""


def _error_response(error: CallbackError, correlation_id: str) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_CODES[error.reason],
        detail=OIDCError(
            error=error.reason.value,
            message=error.public_message,
            correlation_id=correlation_id,
        ).model_dump(),
        headers={"X-Correlation-Id": correlation_id},
    )


@router.get("/auth_url", response_model=AuthURLResponse)
async def auth_url(
    request: Request,
    response: Response,
    initiator: LoginInitiator = Depends(get_login_initiator),
) -> AuthURLResponse:
    """Start an OIDC login

    Stores a nonce for the calling client and returns the provider URL
    the browser should be redirected to.
    """
    correlation_id = str(uuid.uuid4())
    try:
        url = await initiator.begin_login(client_key(request))
    except CallbackError as e:
        logger.warning(f"OIDC login initiation rejected: {e} (correlation: {correlation_id})")
        raise _error_response(e, correlation_id)

    response.headers["X-Correlation-Id"] = correlation_id
    return AuthURLResponse(auth_url=url)


@router.get("/callback", response_model=CallbackResponse)
async def callback(
    request: Request,
    response: Response,
    code: Optional[str] = Query(None, description="Authorization code from the provider"),
    orchestrator: CallbackOrchestrator = Depends(get_callback_orchestrator),
) -> CallbackResponse:
    """Complete an OIDC login

    Exchanges the authorization code, verifies the login against the
    pending nonce and returns the resulting authorization grant.
    """
    correlation_id = str(uuid.uuid4())
    remote = client_key(request)

    try:
        grant = await orchestrator.handle_callback(code, remote)
    except CallbackError as e:
        logger.warning(
            f"OIDC login rejected: {e} (correlation: {correlation_id})",
            extra={
                "reason": e.reason.value,
                "step": e.step,
                "client_key": remote,
                "correlation_id": correlation_id,
            },
        )
        raise _error_response(e, correlation_id)

    response.headers["X-Correlation-Id"] = correlation_id
    logger.info(f"OIDC login for {grant.alias_name} (correlation: {correlation_id})")
    return CallbackResponse(auth=grant)
