from authkit.db.models.role import Role
from authkit.db.models.user import User
from authkit.db.models.auth_account import AuthAccount
from authkit.db.models.password_reset import PasswordReset
from authkit.db.models.settings import SiteSettings
from authkit.db.models.verification_token import VerificationToken

__all__ = ["Role", "User", "AuthAccount", "PasswordReset", "SiteSettings", "VerificationToken"]
