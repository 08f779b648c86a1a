"""DB-level exclusion constraint against overlapping confirmed/active bookings.

Backs up the row lock taken by the engine on the equipment row: even a
writer that bypasses the engine cannot confirm two overlapping bookings.

Revision ID: 002_no_equipment_overlap
Revises: 001_initial_schema
Create Date: 2026-10-12
"""

from alembic import op

from migrations.env_helpers import run_sql_file

revision = "002_no_equipment_overlap"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    run_sql_file("002_no_equipment_overlap_constraint.sql")


def downgrade() -> None:
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS no_equipment_overlap")
    # btree_gist stays installed; other indexes may use it.
