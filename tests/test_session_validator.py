import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from authkit.repositories.user import get_user_by_id
from authkit.services.session import (
    ACCOUNT_DEACTIVATED,
    ACCOUNT_NOT_FOUND,
    UNABLE_TO_VERIFY,
    make_session_validator,
    validate_session,
)


class BrokenSession:
    """Stand-in DB session whose every read fails."""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT users", {}, Exception("connection reset"))

    def get(self, *args, **kwargs):
        raise OperationalError("SELECT users", {}, Exception("connection reset"))


def test_active_user_is_valid(db: Session, regular_user: dict):
    result = validate_session(db, regular_user["id"])
    assert result.is_valid is True
    assert result.reason is None
    assert result.user.id == regular_user["id"]


def test_deactivated_user_is_invalid(db: Session, regular_user: dict):
    user = get_user_by_id(db, regular_user["id"])
    user.is_active = False
    db.commit()

    result = validate_session(db, regular_user["id"])
    assert result.is_valid is False
    assert result.reason == ACCOUNT_DEACTIVATED


def test_missing_user_is_invalid(db: Session):
    result = validate_session(db, "00000000-0000-0000-0000-000000000000")
    assert result.is_valid is False
    assert result.reason == ACCOUNT_NOT_FOUND


def test_read_failure_fails_closed():
    result = validate_session(BrokenSession(), "any-user")
    assert result.is_valid is False
    assert result.reason == UNABLE_TO_VERIFY


def test_validation_does_not_modify_user(db: Session, regular_user: dict):
    before = get_user_by_id(db, regular_user["id"])
    updated_at, last_login = before.updated_at, before.last_login

    validate_session(db, regular_user["id"])
    db.expire_all()

    after = get_user_by_id(db, regular_user["id"])
    assert after.updated_at == updated_at
    assert after.last_login == last_login


@pytest.mark.asyncio
async def test_async_validator_uses_its_own_session(session_factory, regular_user: dict):
    validator = make_session_validator(session_factory)

    result = await validator(regular_user["id"])
    assert result.is_valid is True

    missing = await validator("00000000-0000-0000-0000-000000000000")
    assert missing.reason == ACCOUNT_NOT_FOUND
