"""Custom domain exceptions for the application."""

# Stable, machine-readable error codes for API consumers.
NOT_FOUND = "NOT_FOUND"
DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"

# Single-use token redemption failures (password reset, email confirmation, invite).
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_USED = "TOKEN_USED"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
PASSWORD_UPDATE_FAILED = "PASSWORD_UPDATE_FAILED"
RESET_REQUEST_FAILED = "RESET_REQUEST_FAILED"
CONFIRMATION_REQUEST_FAILED = "CONFIRMATION_REQUEST_FAILED"

IDENTITY_PROVIDER_ERROR = "IDENTITY_PROVIDER_ERROR"
SESSION_REVOKED = "SESSION_REVOKED"

GENERIC_RESET_REQUEST_MESSAGE = "Something went wrong, so please try again later."


class DomainError(Exception):
    """Base exception for domain/business logic errors."""

    pass


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist."""

    pass


class DuplicateResourceError(DomainError):
    """Raised when attempting to create or update a resource that would violate a uniqueness constraint."""

    pass


class DomainValidationError(DomainError):
    """Raised when business rules or domain validation fail (e.g. weak password, missing required fields)."""

    pass


class UnauthorizedError(DomainError):
    """Raised when credentials are missing, wrong, or no longer accepted."""

    pass


class ForbiddenError(DomainError):
    """Raised when the caller is authenticated but lacks permission."""

    pass


class IdentityProviderError(DomainError):
    """Raised when the identity provider rejects or fails an account operation."""

    pass


class SessionRevokedError(UnauthorizedError):
    """Raised when a session is refused because the account was deleted or deactivated."""

    code = SESSION_REVOKED

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TokenRedemptionError(DomainError):
    """Base class for failures redeeming a single-use emailed token. Each carries a stable code."""

    code = VALIDATION_ERROR
    default_message = "Token could not be redeemed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class InvalidTokenError(TokenRedemptionError):
    code = INVALID_TOKEN
    default_message = "Invalid or expired token"


class TokenUsedError(TokenRedemptionError):
    code = TOKEN_USED
    default_message = "Token already used"


class TokenExpiredError(TokenRedemptionError):
    code = TOKEN_EXPIRED
    default_message = "Token expired"


class UnsupportedAccountTypeError(TokenRedemptionError):
    code = UNSUPPORTED_TYPE
    default_message = "Only user type supported"


class PasswordUpdateFailedError(TokenRedemptionError):
    code = PASSWORD_UPDATE_FAILED
    default_message = "Unable to update password, please try again"


class PasswordResetRequestError(DomainError):
    """Raised for any failure while issuing a reset token. The message is always generic."""

    code = RESET_REQUEST_FAILED

    def __init__(self):
        super().__init__(GENERIC_RESET_REQUEST_MESSAGE)


class ConfirmationRequestError(DomainError):
    """Raised for any failure while sending an email confirmation link. The message is always generic."""

    code = CONFIRMATION_REQUEST_FAILED

    def __init__(self):
        super().__init__(GENERIC_RESET_REQUEST_MESSAGE)
