"""OIDC API Models

Purpose: Response models for the OIDC login endpoints
"""

from pydantic import BaseModel, Field

from oidc_auth_service.domain.models.oidc import AuthorizationGrant


class AuthURLResponse(BaseModel):
    """Provider authorization URL to redirect the browser to"""
    auth_url: str = Field(..., description="Identity provider authorization URL")


class CallbackResponse(BaseModel):
    """Successful login result"""
    auth: AuthorizationGrant


class OIDCError(BaseModel):
    """Structured error response for OIDC endpoints"""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    correlation_id: str = Field(..., description="Request correlation ID")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": "forged_or_expired_request",
                    "message": "The login request could not be verified. Please start the login again.",
                    "correlation_id": "1b4e28ba-2fa1-11d2-883f-0016d3cca427",
                }
            ]
        }
    }
