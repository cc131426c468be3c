"""Standardized error response schema."""

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error body for domain exceptions. Clients branch on ``code``, never on ``detail``."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"detail": "Token already used", "code": "TOKEN_USED"},
                {"detail": "Your account has been deactivated", "code": "SESSION_REVOKED"},
            ]
        }
    )

    detail: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
