from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from authkit.db.base import SessionLocal
from authkit.db.models.user import User
from authkit.errors import SessionRevokedError, UnauthorizedError
from authkit.realtime.changes import UserChangeFeed
from authkit.services import auth as auth_service
from authkit.services.email import send_email
from authkit.services.identity import IdentityProvider, LocalIdentityProvider
from authkit.services.password_reset import Mailer

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_identity_provider(request: Request, db: Session = Depends(get_db)) -> IdentityProvider:
    return LocalIdentityProvider(db, events=request.app.state.auth_events)


def get_change_feed(request: Request) -> UserChangeFeed:
    return request.app.state.change_feed


def get_mailer() -> Mailer:
    return send_email


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> User:
    """Get the current authenticated, still-active user from the bearer token."""
    try:
        return auth_service.authenticate(db, identity, token)
    except SessionRevokedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except UnauthorizedError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_roles(*role_names: str):
    """
    Create a dependency that requires the current user to have one of the specified roles.

    Example:
        Depends(require_roles("admin"))
    """
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.name not in role_names:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return current_user

    return role_checker
