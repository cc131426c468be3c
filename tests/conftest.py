import os
import tempfile
from pathlib import Path

# Set environment variables BEFORE any imports that might use settings
# Use a temporary directory for test database to avoid permission issues
_test_db_dir = tempfile.mkdtemp()
_test_db_path = os.path.join(_test_db_dir, "test_authkit.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_db_path}"
os.environ["SECRET_KEY"] = "test-secret-key-min-32-characters-long-for-testing"
os.environ["ALGORITHM"] = "HS256"
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "30"
os.environ["FIRST_ADMIN_EMAIL"] = "admin@test.example.com"
os.environ["FIRST_ADMIN_PASSWORD"] = "AdminTest123!"
os.environ.pop("APP_BASE_URL", None)

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from authkit.main import app
from authkit.db.models.role import Role as RoleModel
from authkit.services.identity import LocalIdentityProvider

ROOT = Path(__file__).resolve().parents[1]

USER_EMAIL = "user@example.com"
USER_PASSWORD = "UserPass123!"


@pytest.fixture(scope="function")
def engine():
    """Create a fresh database for each test and run migrations."""
    temp_db_dir = tempfile.mkdtemp()
    test_db_path = os.path.join(temp_db_dir, "test.db")
    test_db_url = f"sqlite:///{test_db_path}"

    test_engine = create_engine(
        test_db_url,
        connect_args={"check_same_thread": False},
        poolclass=None,  # Don't use connection pooling for SQLite
    )

    # Enable WAL mode to reduce locking issues
    @event.listens_for(test_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    # Run Alembic migrations to set up the database schema and seed data
    alembic_cfg = Config(str(ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", test_db_url)
    command.upgrade(alembic_cfg, "head")

    yield test_engine

    test_engine.dispose()
    try:
        for suffix in ["", "-wal", "-shm"]:
            path = f"{test_db_path}{suffix}"
            if os.path.exists(path):
                os.remove(path)
        os.rmdir(temp_db_dir)
    except OSError as e:
        print(f"Cleanup failed: {e}")


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def db(db_session):
    """Alias for db_session to match test naming conventions."""
    return db_session


@pytest.fixture(scope="function")
def sent_emails() -> list[dict]:
    return []


@pytest.fixture(scope="function")
def fake_mailer(sent_emails):
    """Mailer that records messages instead of talking to SMTP."""

    async def mailer(to: str, subject: str, html: str) -> None:
        sent_emails.append({"to": to, "subject": subject, "html": html})

    return mailer


@pytest.fixture(scope="function")
def client(db_session, fake_mailer):
    """Create a test client with database and mailer dependency overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    from authkit.api.deps import get_db, get_mailer

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: fake_mailer

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def identity(db: Session) -> LocalIdentityProvider:
    return LocalIdentityProvider(db)


@pytest.fixture(scope="function")
def admin_user(db: Session) -> dict:
    """The admin user seeded by migration 002."""
    from authkit.repositories.user import get_user_by_email
    from authkit.core.config import settings

    user = get_user_by_email(db, settings.first_admin_email)
    if not user:
        raise RuntimeError("Admin user not found. Check migration 002.")

    return {
        "id": user.id,
        "email": user.email,
        "password": settings.first_admin_password,  # Plaintext password from env
        "role_id": user.role_id,
    }


@pytest.fixture(scope="function")
def admin_token(identity: LocalIdentityProvider, admin_user: dict) -> str:
    """Get an access token for the admin user."""
    return identity.sign_in(admin_user["email"], admin_user["password"]).access_token


@pytest.fixture(scope="function")
def regular_user(db: Session, identity: LocalIdentityProvider) -> dict:
    """Create a regular (role "user") account with its user record."""
    from authkit.schemas.user import UserCreate
    from authkit.services.user import create_user

    user = create_user(
        db,
        identity,
        UserCreate(
            email=USER_EMAIL,
            password=USER_PASSWORD,
            first_name="Regular",
            last_name="Person",
        ),
    )
    role = db.query(RoleModel).filter(RoleModel.name == "user").first()
    assert user.role_id == role.id

    return {
        "id": user.id,
        "email": user.email,
        "password": USER_PASSWORD,
        "role_id": user.role_id,
    }


@pytest.fixture(scope="function")
def user_token(identity: LocalIdentityProvider, regular_user: dict) -> str:
    return identity.sign_in(regular_user["email"], regular_user["password"]).access_token
