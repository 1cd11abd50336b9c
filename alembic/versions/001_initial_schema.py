"""Initial schema: users, wallets, communities, campaigns, entries, agents, billing.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    """Create all tables."""
    # --- Users & wallets ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("display_name", sa.String(64), nullable=True),
        sa.Column("x_handle", sa.String(64), nullable=True),
        sa.Column("discord_username", sa.String(64), nullable=True),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_banned", sa.Boolean(), server_default="false", nullable=False),
        _created_at(),
    )

    op.create_table(
        "wallets",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("address", sa.String(128), nullable=False),
        sa.Column("chain", sa.String(8), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default="false", nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "address", name="uq_wallets_user_address"),
    )

    # --- Communities & campaigns ---
    op.create_table(
        "communities",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("owner_user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("slug", sa.String(64), nullable=False, unique=True),
        sa.Column("discord_webhook_url", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_communities_owner_user_id", "communities", ["owner_user_id"])

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "community_id", sa.BigInteger(), sa.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("prize", sa.String(200), nullable=True),
        sa.Column("chain", sa.String(8), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("filled", sa.Integer(), server_default="0", nullable=False),
        sa.Column("winner_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_per_wallet", sa.Integer(), nullable=True),
        sa.Column("unit_price", sa.Numeric(20, 8), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_agent_eligible", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("requires_x_follow", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("x_account_to_follow", sa.String(64), nullable=True),
        sa.Column("requires_discord", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("token_gate_address", sa.String(128), nullable=True),
        sa.Column("token_gate_amount", sa.Numeric(36, 8), nullable=True),
        _created_at(),
        sa.CheckConstraint("filled >= 0", name="ck_campaigns_filled_nonneg"),
        sa.CheckConstraint("winner_count <= capacity", name="ck_campaigns_winners_le_capacity"),
        sa.CheckConstraint("kind = 'GIVEAWAY' OR filled <= capacity", name="ck_campaigns_filled_le_capacity"),
    )
    op.create_index("ix_campaigns_community_id", "campaigns", ["community_id"])
    op.create_index("idx_campaigns_kind_status", "campaigns", ["kind", "status"])

    op.create_table(
        "entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("identity_key", sa.String(160), nullable=True),
        sa.Column("wallet_id", sa.BigInteger(), sa.ForeignKey("wallets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("wallet_address", sa.String(128), nullable=True),
        sa.Column("x_username", sa.String(64), nullable=True),
        sa.Column("discord_username", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), server_default="1", nullable=False),
        sa.Column("entry_method", sa.String(16), nullable=False),
        sa.Column("entered_by_agent", sa.Boolean(), server_default="false", nullable=False),
        _created_at(),
        sa.UniqueConstraint("campaign_id", "identity_key", name="uq_entries_campaign_identity"),
    )
    op.create_index("ix_entries_campaign_id", "entries", ["campaign_id"])
    op.create_index("idx_entries_campaign_wallet", "entries", ["campaign_id", "wallet_address"])

    op.create_table(
        "winners",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "entry_id", sa.String(36), sa.ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_winners_campaign_id", "winners", ["campaign_id"])

    # --- Agents & challenges ---
    op.create_table(
        "agents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("key_prefix", sa.String(16), nullable=False, unique=True),
        sa.Column("key_hash", sa.String(256), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("last_challenge_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("request_count", sa.Integer(), server_default="0", nullable=False),
        _created_at(),
    )

    op.create_table(
        "agent_activity",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("agent_id", sa.String(36), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_agent_activity_agent_id", "agent_activity", ["agent_id"])

    op.create_table(
        "challenges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("agent_id", sa.String(36), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("answer", sa.String(1), nullable=False),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("solved", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("used", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_challenges_agent_created", "challenges", ["agent_id", "created_at"])

    # --- Billing ---
    op.create_table(
        "payment_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan", sa.String(16), nullable=False),
        sa.Column("chain", sa.String(8), nullable=False),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("expected_amount_raw", sa.BigInteger(), nullable=False),
        sa.Column("address", sa.String(128), nullable=False),
        sa.Column("memo", sa.String(64), nullable=False, unique=True),
        sa.Column("price_used", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_requests_user_id", "payment_requests", ["user_id"])

    # --- Notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(512), nullable=True),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        "notifications",
        "payment_requests",
        "challenges",
        "agent_activity",
        "agents",
        "winners",
        "entries",
        "campaigns",
        "communities",
        "wallets",
        "users",
    ):
        op.drop_table(table)
