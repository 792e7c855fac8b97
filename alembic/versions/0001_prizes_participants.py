"""prizes and participants

Revision ID: 0001_prizes_participants
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_prizes_participants"
down_revision = None
branch_labels = None
depends_on = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "prizes",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("batch_size", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name=op.f("ck_prizes_quantity_positive")),
        sa.CheckConstraint("batch_size > 0", name=op.f("ck_prizes_batch_size_positive")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prizes")),
    )

    op.create_table(
        "participants",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("is_winner", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("prize_id", ID, nullable=True),
        sa.Column("won_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(is_winner AND prize_id IS NOT NULL AND won_at IS NOT NULL) OR "
            "(NOT is_winner AND prize_id IS NULL AND won_at IS NULL)",
            name=op.f("ck_participants_winner_state_consistent"),
        ),
        sa.ForeignKeyConstraint(
            ["prize_id"],
            ["prizes.id"],
            name=op.f("fk_participants_prize_id_prizes"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_participants")),
        sa.UniqueConstraint("code", name=op.f("uq_participants_code")),
    )
    op.create_index("ix_participants_is_winner", "participants", ["is_winner"], unique=False)
    op.create_index(
        op.f("ix_participants_prize_id"), "participants", ["prize_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_participants_prize_id"), table_name="participants")
    op.drop_index("ix_participants_is_winner", table_name="participants")
    op.drop_table("participants")
    op.drop_table("prizes")
