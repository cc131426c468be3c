"""create settings table with the initial row

Revision ID: 004
Revises: 003
Create Date: 2025-05-10 09:30:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("site_name", sa.String(255), nullable=False),
        sa.Column("logo_url", sa.String(), nullable=False),
        sa.Column("logo_horizontal_url", sa.String(), nullable=False),
        sa.Column("favicon_url", sa.String(), nullable=False),
        sa.Column("logo_setting", sa.String(16), nullable=False),
        sa.Column("primary_color", sa.String(16), nullable=False),
        sa.Column("secondary_color", sa.String(16), nullable=False),
        sa.Column("appearance_theme", sa.String(16), nullable=False),
        sa.Column("site_description", sa.String(), nullable=True),
        sa.Column("contact_email", sa.String(320), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("logo_setting IN ('square', 'horizontal')", name="ck_settings_logo_setting"),
        sa.CheckConstraint(
            "appearance_theme IN ('light', 'dark', 'system')", name="ck_settings_appearance_theme"
        ),
    )

    op.execute(
        sa.text(
            """
            INSERT INTO settings (
                id, site_name, logo_url, logo_horizontal_url, favicon_url, logo_setting,
                primary_color, secondary_color, appearance_theme, site_description, contact_email
            )
            VALUES (
                1, 'Starter Kit', '/favicon.ico', '/favicon.ico', '/favicon.ico', 'square',
                '#3b82f6', '#1e40af', 'light', 'Starter Kit Application', 'support@example.com'
            )
            """
        )
    )


def downgrade() -> None:
    op.drop_table("settings")
