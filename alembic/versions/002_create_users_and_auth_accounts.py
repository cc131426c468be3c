"""create users and auth_accounts tables

Revision ID: 002
Revises: 001
Create Date: 2025-05-10 09:10:00.000000

"""

import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from passlib.context import CryptContext

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def upgrade() -> None:
    op.create_table(
        "auth_accounts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("email_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_auth_accounts_email", "auth_accounts", ["email"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"]),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Get settings from environment (will be loaded by Alembic env.py)
    from authkit.core.config import settings

    connection = op.get_bind()
    admin_role_result = connection.execute(
        sa.text("SELECT id FROM roles WHERE name = 'admin'")
    ).fetchone()

    if not admin_role_result:
        raise ValueError("Admin role not found. Make sure migration 001 has been run.")

    admin_role_id = admin_role_result[0]
    admin_id = str(uuid.uuid4())
    password_hash = pwd_context.hash(settings.first_admin_password)

    # Seed the first admin: identity account first, then the profile record
    op.execute(
        sa.text(
            """
            INSERT INTO auth_accounts (id, email, password_hash, email_confirmed_at, session_version)
            VALUES (:id, :email, :password_hash, CURRENT_TIMESTAMP, 0)
            """
        ).bindparams(
            id=admin_id,
            email=settings.first_admin_email,
            password_hash=password_hash,
        )
    )
    op.execute(
        sa.text(
            """
            INSERT INTO users (id, email, first_name, last_name, is_active, role_id)
            VALUES (:id, :email, 'Admin', NULL, :is_active, :role_id)
            """
        ).bindparams(
            id=admin_id,
            email=settings.first_admin_email,
            is_active=True,
            role_id=admin_role_id,
        )
    )


def downgrade() -> None:
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_auth_accounts_email", table_name="auth_accounts")
    op.drop_table("auth_accounts")
