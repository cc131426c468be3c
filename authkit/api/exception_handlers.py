"""Global exception handlers that map domain exceptions to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from authkit.errors import (
    DUPLICATE_RESOURCE,
    FORBIDDEN,
    IDENTITY_PROVIDER_ERROR,
    NOT_FOUND,
    UNAUTHORIZED,
    VALIDATION_ERROR,
    ConfirmationRequestError,
    DomainValidationError,
    DuplicateResourceError,
    ForbiddenError,
    IdentityProviderError,
    NotFoundError,
    PasswordResetRequestError,
    TokenRedemptionError,
    UnauthorizedError,
)
from authkit.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Return a standardized error response with detail and machine-readable code."""
    body = ErrorResponse(detail=detail, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def domain_validation_error_handler(
    _request: Request, exc: DomainValidationError
) -> JSONResponse:
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        str(exc),
        VALIDATION_ERROR,
    )


def duplicate_resource_error_handler(
    _request: Request, exc: DuplicateResourceError
) -> JSONResponse:
    return _error_response(
        status.HTTP_409_CONFLICT,
        str(exc),
        DUPLICATE_RESOURCE,
    )


def not_found_error_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(
        status.HTTP_404_NOT_FOUND,
        str(exc),
        NOT_FOUND,
    )


def forbidden_error_handler(_request: Request, exc: ForbiddenError) -> JSONResponse:
    return _error_response(
        status.HTTP_403_FORBIDDEN,
        str(exc),
        FORBIDDEN,
    )


def unauthorized_error_handler(_request: Request, exc: UnauthorizedError) -> JSONResponse:
    return _error_response(
        status.HTTP_401_UNAUTHORIZED,
        str(exc),
        getattr(exc, "code", UNAUTHORIZED),
    )


def token_redemption_error_handler(
    _request: Request, exc: TokenRedemptionError
) -> JSONResponse:
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        str(exc),
        exc.code,
    )


def request_error_handler(
    _request: Request, exc: PasswordResetRequestError | ConfirmationRequestError
) -> JSONResponse:
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc),
        exc.code,
    )


def identity_provider_error_handler(
    _request: Request, exc: IdentityProviderError
) -> JSONResponse:
    logger.error("Identity provider error: %s", exc)
    return _error_response(
        status.HTTP_502_BAD_GATEWAY,
        "Authentication service error, please try again later",
        IDENTITY_PROVIDER_ERROR,
    )


def register_exception_handlers(app):
    """Register domain exception handlers on the FastAPI app."""
    app.add_exception_handler(DomainValidationError, domain_validation_error_handler)
    app.add_exception_handler(DuplicateResourceError, duplicate_resource_error_handler)
    app.add_exception_handler(ForbiddenError, forbidden_error_handler)
    app.add_exception_handler(NotFoundError, not_found_error_handler)
    app.add_exception_handler(UnauthorizedError, unauthorized_error_handler)
    app.add_exception_handler(TokenRedemptionError, token_redemption_error_handler)
    app.add_exception_handler(PasswordResetRequestError, request_error_handler)
    app.add_exception_handler(ConfirmationRequestError, request_error_handler)
    app.add_exception_handler(IdentityProviderError, identity_provider_error_handler)
