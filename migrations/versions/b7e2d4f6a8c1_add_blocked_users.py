"""add blocked users

Revision ID: b7e2d4f6a8c1
Revises: a1f3c9d2e4b7
Create Date: 2025-07-14 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7e2d4f6a8c1"
down_revision = "a1f3c9d2e4b7"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "blocked_users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("blocked_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["blocked_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("blocked_users", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_blocked_users_user_id"), ["user_id"], unique=True)


def downgrade():
    with op.batch_alter_table("blocked_users", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_blocked_users_user_id"))

    op.drop_table("blocked_users")
