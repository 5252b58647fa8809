"""001 – Initial schema: users, leaves, leave_status enum.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    op.execute("CREATE TYPE leave_status AS ENUM ('PENDING', 'APPROVED', 'REJECTED')")

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id              VARCHAR(128) PRIMARY KEY,
            name            VARCHAR(200) NOT NULL,
            email           VARCHAR(255) NOT NULL UNIQUE,
            is_active       BOOLEAN NOT NULL DEFAULT FALSE,
            is_admin        BOOLEAN NOT NULL DEFAULT FALSE,
            available_days  DOUBLE PRECISION,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX ix_users_email ON users (email)")

    # ── 2. leaves ─────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leaves (
            id          UUID PRIMARY KEY,
            user_id     VARCHAR(128) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            start_date  DATE NOT NULL,
            end_date    DATE NOT NULL,
            days        INTEGER NOT NULL,
            status      leave_status NOT NULL DEFAULT 'PENDING',
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ,
            CONSTRAINT ck_leaves_date_order CHECK (start_date < end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leaves_user_dates ON leaves (user_id, start_date, end_date)"
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leaves CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
    op.execute("DROP TYPE IF EXISTS leave_status")
