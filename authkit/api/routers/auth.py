from fastapi import APIRouter, Depends, Form, status
from sqlalchemy.orm import Session

from authkit.api.deps import (
    get_current_user,
    get_db,
    get_identity_provider,
    get_mailer,
    oauth2_scheme,
)
from authkit.db.models.user import User as UserModel
from authkit.schemas.user import (
    AcceptInvite,
    EmailConfirmationRequest,
    MessageResponse,
    PasswordReset,
    PasswordResetRequest,
    RefreshRequest,
    SessionStatus,
    SignupRequest,
    Token,
    User,
    VerifyEmailRequest,
)
from authkit.services import auth as auth_service
from authkit.services import verification
from authkit.services.identity import IdentityProvider
from authkit.services.password_reset import (
    Mailer,
    redeem_password_reset,
    request_password_reset,
)
from authkit.services.session import validate_session

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(
    username: str = Form(...),  # OAuth2 uses "username", but we treat it as email
    password: str = Form(...),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """
    Login endpoint - returns an access/refresh token pair.
    Uses form data for OAuth2 compatibility (Swagger UI authorization).
    The 'username' field should contain the user's email address.
    """
    return auth_service.login(db, identity, username, password)


@router.post("/refresh", response_model=Token)
def refresh(
    body: RefreshRequest,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    return auth_service.refresh(db, identity, body.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: str = Depends(oauth2_scheme),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Revoke every token of the caller's account."""
    auth_service.logout(identity, token)


@router.post("/signup", response_model=User, status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    mailer: Mailer = Depends(get_mailer),
):
    """Register a new account and email a confirmation link. Does not sign in."""
    user = auth_service.sign_up(db, identity, body)
    await verification.send_email_confirmation(db, user, mailer=mailer)
    return User.model_validate(user)


@router.post("/resend-confirmation", response_model=MessageResponse)
async def resend_confirmation(
    body: EmailConfirmationRequest,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    mailer: Mailer = Depends(get_mailer),
):
    return await verification.request_email_confirmation(
        db, body.email, identity=identity, mailer=mailer
    )


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(
    body: VerifyEmailRequest,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Confirm an email address using the token from the confirmation email."""
    return verification.confirm_email(db, body.token, identity=identity)


@router.post("/accept-invite", response_model=MessageResponse)
def accept_invite(
    body: AcceptInvite,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Choose a password for an invited account. The user can sign in afterwards."""
    return verification.accept_invite(db, body.token, body.password, identity=identity)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: PasswordResetRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Request password reset - sends email with reset link if the account exists."""
    return await request_password_reset(db, body.email, body.type, mailer=mailer)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: PasswordReset,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Reset password using token from email."""
    return redeem_password_reset(
        db, body.token, body.new_password, body.type, identity=identity
    )


@router.get("/session", response_model=SessionStatus)
def session_status(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Report whether the bearer's session is still valid, and why not."""
    claims = identity.get_session(token)
    if claims is None:
        return SessionStatus(is_valid=False, reason="Could not validate credentials")
    validation = validate_session(db, claims.user_id)
    return SessionStatus(is_valid=validation.is_valid, reason=validation.reason)


@router.get("/me", response_model=User)
def get_current_user_info(current_user: UserModel = Depends(get_current_user)):
    """Get current authenticated user information."""
    return User.model_validate(current_user)
