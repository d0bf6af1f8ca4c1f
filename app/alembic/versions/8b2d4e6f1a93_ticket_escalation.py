"""ticket escalation

Revision ID: 8b2d4e6f1a93
Revises: 3f1c9a7e2b40
Create Date: 2026-10-18 15:41:07.518320

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b2d4e6f1a93"
down_revision: Union[str, Sequence[str], None] = "3f1c9a7e2b40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add escalation target, actor and note to tickets"""
    op.add_column("tickets", sa.Column("escalated_to_role", sa.String(length=20), nullable=True))
    op.add_column("tickets", sa.Column("escalated_to_user_id", sa.Uuid(), nullable=True))
    op.add_column("tickets", sa.Column("escalated_by_id", sa.Uuid(), nullable=True))
    op.add_column(
        "tickets", sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True)
    )
    op.add_column("tickets", sa.Column("escalation_note", sa.Text(), nullable=True))
    op.create_foreign_key(
        "fk_tickets_escalated_to_user_id",
        "tickets",
        "users",
        ["escalated_to_user_id"],
        ["id"],
        ondelete="SET NULL",
    )
    op.create_foreign_key(
        "fk_tickets_escalated_by_id",
        "tickets",
        "users",
        ["escalated_by_id"],
        ["id"],
        ondelete="SET NULL",
    )


def downgrade() -> None:
    """Remove ticket escalation columns"""
    op.drop_constraint("fk_tickets_escalated_by_id", "tickets", type_="foreignkey")
    op.drop_constraint("fk_tickets_escalated_to_user_id", "tickets", type_="foreignkey")
    for column in (
        "escalation_note",
        "escalated_at",
        "escalated_by_id",
        "escalated_to_user_id",
        "escalated_to_role",
    ):
        op.drop_column("tickets", column)
