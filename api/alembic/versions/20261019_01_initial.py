"""Initial schema: users, interests, pokes, DM channels, chat, notifications."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261019_01_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("cafe_id", sa.Uuid(), nullable=True),
        sa.Column("tier", sa.String(20), nullable=False, server_default="free"),
        sa.Column("poke_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_seen_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("tier IN ('free', 'badge_holder')", name="ck_users_tier"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )

    op.create_table(
        "user_roles",
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role", sa.String(), primary_key=True),
        sa.Column("granted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("granted_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
    )

    op.create_table(
        "user_interests",
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("interest", sa.String(50), primary_key=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_user_interests_interest", "user_interests", ["interest"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("key_prefix", sa.String(12), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("idx_api_keys_key_hash", "api_keys", ["key_hash"])

    op.create_table(
        "pokes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "from_user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("shared_interest", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired', 'matched')",
            name="ck_pokes_status",
        ),
        sa.CheckConstraint("from_user_id <> to_user_id", name="ck_pokes_no_self_poke"),
    )
    op.create_index("idx_pokes_to_user_status", "pokes", ["to_user_id", "status"])
    op.create_index(
        "idx_pokes_from_user",
        "pokes",
        ["from_user_id", sa.text("created_at DESC")],
    )
    op.create_index("idx_pokes_expires_at", "pokes", ["expires_at"])

    op.create_table(
        "dm_channels",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user1_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user2_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("cafe_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_message_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_dm_channels_user_pair"),
        sa.CheckConstraint("user1_id < user2_id", name="ck_dm_channels_ordered_users"),
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("cafe_id", sa.Uuid(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "length(content) <= 2000", name="ck_chat_messages_content_length"
        ),
    )
    op.create_index(
        "idx_chat_messages_cafe_created",
        "chat_messages",
        ["cafe_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("notification_type", sa.String(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("resource_type", sa.String(), nullable=True),
        sa.Column("resource_id", sa.Uuid(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_notifications_user",
        "notifications",
        ["user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_notifications_user", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_chat_messages_cafe_created", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_table("dm_channels")
    op.drop_index("idx_pokes_expires_at", table_name="pokes")
    op.drop_index("idx_pokes_from_user", table_name="pokes")
    op.drop_index("idx_pokes_to_user_status", table_name="pokes")
    op.drop_table("pokes")
    op.drop_index("idx_api_keys_key_hash", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_index("idx_user_interests_interest", table_name="user_interests")
    op.drop_table("user_interests")
    op.drop_table("user_roles")
    op.drop_table("users")
