from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from authkit.schemas.role import Role

AccountType = Literal["user", "developer"]


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool
    role_id: int
    role: Role
    created_at: datetime | None = None
    last_login: datetime | None = None


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)
    role_id: int | None = None  # If not provided, defaults to "user"
    is_active: bool = True


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)
    role_id: int | None = None
    is_active: bool | None = None


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)


class PasswordResetRequest(BaseModel):
    email: EmailStr
    type: AccountType = "user"


class PasswordReset(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8)
    type: AccountType = "user"


class EmailConfirmationRequest(BaseModel):
    email: EmailStr


class VerifyEmailRequest(BaseModel):
    token: str


class InviteRequest(BaseModel):
    email: EmailStr
    role_id: int | None = None  # If not provided, defaults to "user"
    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)


class InviteBatch(BaseModel):
    invites: list[InviteRequest] = Field(..., min_length=1, max_length=100)


class InviteResult(BaseModel):
    user: User
    email_sent: bool


class AcceptInvite(BaseModel):
    token: str
    password: str = Field(..., min_length=8)


class RefreshRequest(BaseModel):
    refresh_token: str


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    verified: bool
    user: User


class SessionStatus(BaseModel):
    is_valid: bool
    reason: str | None = None


class MessageResponse(BaseModel):
    message: str
