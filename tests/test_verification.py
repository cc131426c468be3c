import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from authkit.db.models.auth_account import AuthAccount
from authkit.db.models.user import User as UserModel
from authkit.db.models.verification_token import EMAIL_CONFIRMATION, INVITE
from authkit.domain.reset_token import as_utc
from authkit.errors import (
    ConfirmationRequestError,
    InvalidTokenError,
    TokenExpiredError,
    TokenUsedError,
)
from authkit.repositories.password_reset import create_password_reset
from authkit.repositories.verification_token import (
    create_verification_token,
    get_verification_tokens_for_user,
)
from authkit.services.verification import (
    CONFIRMATION_REQUESTED_MESSAGE,
    confirm_email,
    request_email_confirmation,
    send_email_confirmation,
)

SIGNUP = {
    "email": "fresh@example.com",
    "password": "FreshPass123!",
    "first_name": "Fresh",
    "last_name": "Start",
}
INVITE_PASSWORD = "Invited123!"


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _link_token(html: str, path: str) -> str:
    return re.search(rf"{path}\?token=([0-9a-f]{{64}})", html).group(1)


def _login(client, email: str, password: str):
    return client.post("/api/v1/auth/login", data={"username": email, "password": password})


# ============================================================================
# EMAIL CONFIRMATION TESTS
# ============================================================================


def test_signup_sends_confirmation_and_verify_confirms(client, db: Session, sent_emails):
    response = client.post("/api/v1/auth/signup", json=SIGNUP)
    assert response.status_code == 201
    user_id = response.json()["id"]

    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == SIGNUP["email"]
    assert "1 day" in sent_emails[0]["html"]
    token = _link_token(sent_emails[0]["html"], "http://localhost:3010/auth/verify")

    assert _login(client, SIGNUP["email"], SIGNUP["password"]).json()["verified"] is False

    verified = client.post("/api/v1/auth/verify-email", json={"token": token})
    assert verified.status_code == 200
    assert verified.json()["message"] == "Email confirmed successfully"

    assert _login(client, SIGNUP["email"], SIGNUP["password"]).json()["verified"] is True
    db.expire_all()
    assert db.get(AuthAccount, user_id).email_confirmed_at is not None

    again = client.post("/api/v1/auth/verify-email", json={"token": token})
    assert again.status_code == 400
    assert again.json()["code"] == "TOKEN_USED"


def test_signup_survives_mailer_failure(client, db: Session, sent_emails, fake_mailer):
    from authkit.api.deps import get_mailer
    from authkit.main import app

    async def broken_mailer(to, subject, html):
        raise ConnectionRefusedError("smtp refused")

    app.dependency_overrides[get_mailer] = lambda: broken_mailer
    response = client.post("/api/v1/auth/signup", json=SIGNUP)
    assert response.status_code == 201
    user_id = response.json()["id"]
    assert get_verification_tokens_for_user(db, user_id) == []

    app.dependency_overrides[get_mailer] = lambda: fake_mailer
    resent = client.post("/api/v1/auth/resend-confirmation", json={"email": SIGNUP["email"]})
    assert resent.status_code == 200
    assert len(sent_emails) == 1
    assert len(get_verification_tokens_for_user(db, user_id, EMAIL_CONFIRMATION)) == 1


def test_resend_confirmation_does_not_reveal_account(
    client, db: Session, regular_user: dict, sent_emails
):
    confirmed = client.post(
        "/api/v1/auth/resend-confirmation", json={"email": regular_user["email"]}
    )
    unknown = client.post(
        "/api/v1/auth/resend-confirmation", json={"email": "nobody@example.com"}
    )

    assert confirmed.status_code == unknown.status_code == 200
    assert confirmed.json() == unknown.json() == {"message": CONFIRMATION_REQUESTED_MESSAGE}
    assert sent_emails == []


@pytest.mark.asyncio
async def test_resend_confirmation_failure_is_generic(db: Session, identity):
    from authkit.schemas.user import SignupRequest
    from authkit.services.auth import sign_up

    sign_up(db, identity, SignupRequest(**SIGNUP))

    async def broken_mailer(to, subject, html):
        raise TimeoutError("smtp.internal timed out")

    with pytest.raises(ConfirmationRequestError) as exc_info:
        await request_email_confirmation(
            db, SIGNUP["email"], identity=identity, mailer=broken_mailer
        )
    assert "smtp" not in str(exc_info.value)
    assert exc_info.value.code == "CONFIRMATION_REQUEST_FAILED"


@pytest.mark.asyncio
async def test_confirmation_token_expires(db: Session, identity, fake_mailer, sent_emails):
    from authkit.schemas.user import SignupRequest
    from authkit.services.auth import sign_up

    user = sign_up(db, identity, SignupRequest(**SIGNUP))
    issued_at = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert await send_email_confirmation(db, user, mailer=fake_mailer, now=issued_at)

    record = get_verification_tokens_for_user(db, user.id)[0]
    assert as_utc(record.expires_at) == issued_at + timedelta(days=1)

    with pytest.raises(TokenExpiredError):
        confirm_email(
            db, record.token, identity=identity,
            now=issued_at + timedelta(days=1, seconds=1),
        )
    assert identity.is_email_confirmed(user.id) is False


def test_tokens_only_work_for_their_own_purpose(
    client, db: Session, identity, regular_user: dict
):
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    reset_token = "aa" * 32
    invite_token = "bb" * 32
    create_password_reset(db, regular_user["id"], regular_user["email"], reset_token, expires_at)
    create_verification_token(
        db, regular_user["id"], regular_user["email"], invite_token, INVITE, expires_at
    )

    for token in (reset_token, invite_token):
        with pytest.raises(InvalidTokenError):
            confirm_email(db, token, identity=identity)

    response = client.post(
        "/api/v1/auth/reset-password",
        json={"token": invite_token, "new_password": "NewPassw0rd!"},
    )
    assert response.json()["code"] == "INVALID_TOKEN"


def test_confirmation_link_for_old_address_is_rejected(
    client, db: Session, identity, user_token: str, regular_user: dict
):
    token = "cc" * 32
    create_verification_token(
        db, regular_user["id"], regular_user["email"], token, EMAIL_CONFIRMATION,
        datetime.now(timezone.utc) + timedelta(hours=1),
    )
    client.put(
        f"/api/v1/users/{regular_user['id']}",
        json={"email": "moved@example.com"},
        headers=_auth(user_token),
    )

    response = client.post("/api/v1/auth/verify-email", json={"token": token})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TOKEN"


# ============================================================================
# INVITE TESTS
# ============================================================================


def test_invite_and_accept(client, db: Session, admin_token: str, sent_emails):
    response = client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "invitee@example.com", "first_name": "Inv"}]},
        headers=_auth(admin_token),
    )
    assert response.status_code == 201
    [result] = response.json()
    assert result["email_sent"] is True
    assert result["user"]["email"] == "invitee@example.com"
    assert result["user"]["role"]["name"] == "user"

    assert len(sent_emails) == 1
    assert "7 days" in sent_emails[0]["html"]
    token = _link_token(sent_emails[0]["html"], "http://localhost:3010/auth/accept-invite")

    # No usable password until the invite is accepted
    assert _login(client, "invitee@example.com", INVITE_PASSWORD).status_code == 401

    accepted = client.post(
        "/api/v1/auth/accept-invite", json={"token": token, "password": INVITE_PASSWORD}
    )
    assert accepted.status_code == 200

    login = _login(client, "invitee@example.com", INVITE_PASSWORD)
    assert login.status_code == 200
    assert login.json()["verified"] is True

    again = client.post(
        "/api/v1/auth/accept-invite", json={"token": token, "password": "Another123!"}
    )
    assert again.status_code == 400
    assert again.json()["code"] == "TOKEN_USED"


def test_invite_batch_is_checked_before_creating_anyone(
    client, db: Session, admin_token: str, regular_user: dict, sent_emails
):
    response = client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "first@example.com"}, {"email": regular_user["email"]}]},
        headers=_auth(admin_token),
    )
    assert response.status_code == 409
    assert db.query(UserModel).filter(UserModel.email == "first@example.com").count() == 0
    assert sent_emails == []


def test_invite_same_email_twice_in_batch(client, db: Session, admin_token: str):
    response = client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "twice@example.com"}, {"email": "twice@example.com"}]},
        headers=_auth(admin_token),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_invite_as_regular_user_forbidden(client, db: Session, user_token: str):
    response = client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "sneaky@example.com"}]},
        headers=_auth(user_token),
    )
    assert response.status_code == 403


def test_failed_invite_email_can_be_resent(
    client, db: Session, admin_token: str, sent_emails, fake_mailer
):
    from authkit.api.deps import get_mailer
    from authkit.main import app

    async def broken_mailer(to, subject, html):
        raise ConnectionRefusedError("smtp refused")

    app.dependency_overrides[get_mailer] = lambda: broken_mailer
    response = client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "unlucky@example.com"}]},
        headers=_auth(admin_token),
    )
    assert response.status_code == 201
    [result] = response.json()
    assert result["email_sent"] is False
    user_id = result["user"]["id"]
    assert get_verification_tokens_for_user(db, user_id) == []

    app.dependency_overrides[get_mailer] = lambda: fake_mailer
    resent = client.post(f"/api/v1/users/{user_id}/invite", headers=_auth(admin_token))
    assert resent.status_code == 200
    assert resent.json()["email_sent"] is True
    assert len(sent_emails) == 1
    assert len(get_verification_tokens_for_user(db, user_id, INVITE)) == 1


def test_resend_invite_to_confirmed_user_rejected(
    client, db: Session, admin_token: str, regular_user: dict, sent_emails
):
    response = client.post(
        f"/api/v1/users/{regular_user['id']}/invite", headers=_auth(admin_token)
    )
    assert response.status_code == 400
    assert sent_emails == []


def test_accept_invite_weak_password_keeps_token(
    client, db: Session, admin_token: str, sent_emails
):
    client.post(
        "/api/v1/users/invite",
        json={"invites": [{"email": "weak@example.com"}]},
        headers=_auth(admin_token),
    )
    token = _link_token(sent_emails[0]["html"], "accept-invite")

    weak = client.post(
        "/api/v1/auth/accept-invite", json={"token": token, "password": "weakpassword"}
    )
    assert weak.status_code == 400
    assert weak.json()["code"] == "VALIDATION_ERROR"

    accepted = client.post(
        "/api/v1/auth/accept-invite", json={"token": token, "password": INVITE_PASSWORD}
    )
    assert accepted.status_code == 200


def test_accept_invite_expired(db: Session, identity):
    from authkit.schemas.user import InviteRequest
    from authkit.services.user import create_invited_user
    from authkit.services.verification import accept_invite

    user = create_invited_user(db, identity, InviteRequest(email="late@example.com"))
    token = "dd" * 32
    create_verification_token(
        db, user.id, user.email, token, INVITE,
        datetime.now(timezone.utc) - timedelta(seconds=1),
    )

    with pytest.raises(TokenExpiredError):
        accept_invite(db, token, INVITE_PASSWORD, identity=identity)

    assert identity.is_email_confirmed(user.id) is False

    fresh = "ee" * 32
    create_verification_token(
        db, user.id, user.email, fresh, INVITE,
        datetime.now(timezone.utc) + timedelta(hours=1),
    )
    accept_invite(db, fresh, INVITE_PASSWORD, identity=identity)
    assert identity.is_email_confirmed(user.id) is True
    assert identity.sign_in(user.email, INVITE_PASSWORD).user_id == user.id

    with pytest.raises(TokenUsedError):
        accept_invite(db, fresh, INVITE_PASSWORD, identity=identity)
