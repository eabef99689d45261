"""Create admin_emails, download_tokens, download_history and notified_signups.

Idempotent (CREATE ... IF NOT EXISTS) because the Supabase project may already
have these tables from the dashboard.

Revision ID: 001_download_tables
Revises:
Create Date: 2026-09-14
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_download_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS admin_emails (
            email VARCHAR(320) PRIMARY KEY,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
        """
    ))

    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS download_tokens (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            paid BOOLEAN NOT NULL DEFAULT false,
            file_path VARCHAR,
            file_name VARCHAR,
            mastering_target VARCHAR(64),
            amount_cents INTEGER,
            stripe_session_id VARCHAR(255),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
        """
    ))
    conn.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_download_tokens_user_id ON download_tokens (user_id)"
    ))
    conn.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_download_tokens_user_paid_created "
        "ON download_tokens (user_id, paid, created_at)"
    ))

    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS download_history (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            file_name VARCHAR,
            mastering_target VARCHAR(64),
            amount_cents INTEGER,
            storage_path VARCHAR,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMP WITH TIME ZONE
        )
        """
    ))
    conn.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_download_history_user_id ON download_history (user_id)"
    ))

    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS notified_signups (
            user_id VARCHAR(64) PRIMARY KEY,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
        """
    ))


def downgrade() -> None:
    """Keep purchase data for safety; no-op downgrade."""
    pass
