"""Equipment, bookings, append-only status history, outbox and pending refunds.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-12
"""

from migrations.env_helpers import run_sql_file

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    run_sql_file("001_initial.sql")


def downgrade() -> None:
    # Bookings and their history are never deleted.
    raise NotImplementedError("001_initial_schema cannot be downgraded")
