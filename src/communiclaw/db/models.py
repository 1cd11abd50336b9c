"""ORM models for communities, campaigns, entries, agents and payments.

Column types are kept portable (JSON instead of JSONB, string UUIDs) so the
same metadata runs on PostgreSQL in production and SQLite in tests.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from communiclaw.db.base import Base, BigIntPK
from communiclaw.timeutils import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


def _challenge_token() -> str:
    return secrets.token_urlsafe(24)


class CampaignKind(str, Enum):
    GIVEAWAY = "GIVEAWAY"
    ALLOWLIST = "ALLOWLIST"
    PRESALE = "PRESALE"


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    COMPLETED = "COMPLETED"


class EntryMethod(str, Enum):
    RAFFLE = "RAFFLE"
    FCFS = "FCFS"
    AGENT = "AGENT"
    PURCHASE = "PURCHASE"


class Chain(str, Enum):
    BTC = "BTC"
    SOL = "SOL"
    ETH = "ETH"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Users & wallets
# ---------------------------------------------------------------------------


class User(Base):
    """A platform user. Provisioned by the identity provider."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    x_handle: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discord_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    wallets: Mapped[list[Wallet]] = relationship("Wallet", back_populates="user")
    agent: Mapped[Agent | None] = relationship("Agent", back_populates="user", uselist=False)


class Wallet(Base):
    """A wallet address linked by a user."""

    __tablename__ = "wallets"
    __table_args__ = (UniqueConstraint("user_id", "address", name="uq_wallets_user_address"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    address: Mapped[str] = mapped_column(String(128), nullable=False)
    chain: Mapped[str] = mapped_column(String(8), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="wallets")


# ---------------------------------------------------------------------------
# Communities & campaigns
# ---------------------------------------------------------------------------


class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    owner_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    discord_webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    campaigns: Mapped[list[Campaign]] = relationship("Campaign", back_populates="community")


class Campaign(Base):
    """Giveaway, allowlist or presale, tagged by ``kind``.

    ``capacity`` is total winners (giveaway), total spots (allowlist) or total
    supply (presale). ``filled`` counts entries, filled spots or sold units.
    """

    __tablename__ = "campaigns"
    __table_args__ = (
        Index("idx_campaigns_kind_status", "kind", "status"),
        CheckConstraint("filled >= 0", name="ck_campaigns_filled_nonneg"),
        CheckConstraint("winner_count <= capacity", name="ck_campaigns_winners_le_capacity"),
        CheckConstraint("kind = 'GIVEAWAY' OR filled <= capacity", name="ck_campaigns_filled_le_capacity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    community_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    prize: Mapped[str | None] = mapped_column(String(200), nullable=True)
    chain: Mapped[str] = mapped_column(String(8), nullable=False, default=Chain.SOL.value)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    filled: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    winner_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_per_wallet: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(20, 8), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=CampaignStatus.DRAFT.value)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_agent_eligible: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    requires_x_follow: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    x_account_to_follow: Mapped[str | None] = mapped_column(String(64), nullable=True)
    requires_discord: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    token_gate_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    token_gate_amount: Mapped[Decimal | None] = mapped_column(Numeric(36, 8), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    community: Mapped[Community] = relationship("Community", back_populates="campaigns")


class Entry(Base):
    """One identity's claim against a campaign. Immutable once created.

    ``identity_key`` is ``user:<id>`` for giveaways and ``wallet:<address>``
    for allowlists; presale orders leave it NULL and are bounded by
    ``max_per_wallet`` instead.
    """

    __tablename__ = "entries"
    __table_args__ = (
        UniqueConstraint("campaign_id", "identity_key", name="uq_entries_campaign_identity"),
        Index("idx_entries_campaign_wallet", "campaign_id", "wallet_address"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    identity_key: Mapped[str | None] = mapped_column(String(160), nullable=True)
    wallet_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("wallets.id", ondelete="SET NULL"), nullable=True
    )
    wallet_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    x_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discord_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    entry_method: Mapped[str] = mapped_column(String(16), nullable=False)
    entered_by_agent: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship("User")
    winner: Mapped[Winner | None] = relationship("Winner", back_populates="entry", uselist=False)


class Winner(Base):
    """A drawn outcome. At most one per entry, created only by the draw engine."""

    __tablename__ = "winners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("entries.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    drawn_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    entry: Mapped[Entry] = relationship("Entry", back_populates="winner")


# ---------------------------------------------------------------------------
# Agents & challenges
# ---------------------------------------------------------------------------


class Agent(Base):
    """Automated caller acting for a user. One per user."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    key_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    last_challenge_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    request_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="agent")


class AgentActivity(Base):
    __tablename__ = "agent_activity"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Challenge(Base):
    """A trivia challenge. The token exists from creation but only counts once solved."""

    __tablename__ = "challenges"
    __table_args__ = (Index("idx_challenges_agent_created", "agent_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    answer: Mapped[str] = mapped_column(String(1), nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, default=_challenge_token)
    solved: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    used: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class PaymentRequest(Base):
    """A crypto checkout attempt. Only ``status`` changes after creation."""

    __tablename__ = "payment_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan: Mapped[str] = mapped_column(String(16), nullable=False)
    chain: Mapped[str] = mapped_column(String(8), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    expected_amount_raw: Mapped[int] = mapped_column(BigInteger, nullable=False)
    address: Mapped[str] = mapped_column(String(128), nullable=False)
    memo: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    price_used: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PaymentStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
