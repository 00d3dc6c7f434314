"""create push subscriptions

Revision ID: 001_create_push_subscriptions
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa

from alembic import op

revision = "001_create_push_subscriptions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("device_id", sa.String(255), nullable=False, server_default="default"),
        sa.Column("subscription_id", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.String(1000), nullable=False),
        sa.Column("p256dh", sa.String(255), nullable=False),
        sa.Column("auth", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("owner_id", "subscription_id", name="uq_push_subscriptions_owner_sub"),
    )
    op.create_index("ix_push_subscriptions_owner_id", "push_subscriptions", ["owner_id"])
    op.create_index("ix_push_subscriptions_expires_at", "push_subscriptions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_push_subscriptions_expires_at", "push_subscriptions")
    op.drop_index("ix_push_subscriptions_owner_id", "push_subscriptions")
    op.drop_table("push_subscriptions")
