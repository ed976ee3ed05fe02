"""Users and user sessions

Revision ID: 001
Revises: 
Create Date: 2025-07-30

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("last_login_ip", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", sa.String(255), nullable=False, unique=True),
        sa.Column("ip_address", sa.String(45), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=False),
        sa.Column("device_type", sa.String(20), nullable=True),
        sa.Column("device_name", sa.String(255), nullable=True),
        sa.Column("browser", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(255), nullable=True),
        sa.Column("location", sa.JSON(), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_activity", sa.DateTime(), nullable=False),
        sa.Column("logged_out_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_user_sessions_user_session", "user_sessions", ["user_id", "session_id"])
    op.create_index("ix_user_sessions_user_current", "user_sessions", ["user_id", "is_current"])


def downgrade() -> None:
    op.drop_index("ix_user_sessions_user_current", table_name="user_sessions")
    op.drop_index("ix_user_sessions_user_session", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_table("users")
