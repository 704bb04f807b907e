"""Soft-delete tombstones on remote books and transactions.

Revision ID: 0002_remote_tombstones
Revises: 0001_remote_core
Create Date: 2025-10-09
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_remote_tombstones"
down_revision: str | None = "0001_remote_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    for table in ("books", "transactions"):
        with op.batch_alter_table(table) as batch:
            batch.add_column(
                sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false())
            )


def downgrade() -> None:
    for table in ("transactions", "books"):
        with op.batch_alter_table(table) as batch:
            batch.drop_column("deleted")
