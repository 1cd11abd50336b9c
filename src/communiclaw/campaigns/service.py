"""Campaign creation, lookup and time-driven status transitions."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.campaigns.schemas import CampaignCreateRequest
from communiclaw.db.models import Campaign, CampaignKind, CampaignStatus, Community, User
from communiclaw.errors import AuthorizationError, NotFoundError, ValidationError
from communiclaw.timeutils import as_utc, utcnow

logger = structlog.get_logger()

# URL segment -> kind. Singular and plural both resolve.
KIND_ALIASES: dict[str, CampaignKind] = {
    "giveaway": CampaignKind.GIVEAWAY,
    "giveaways": CampaignKind.GIVEAWAY,
    "allowlist": CampaignKind.ALLOWLIST,
    "allowlists": CampaignKind.ALLOWLIST,
    "presale": CampaignKind.PRESALE,
    "presales": CampaignKind.PRESALE,
}

KIND_LABELS: dict[str, str] = {
    CampaignKind.GIVEAWAY.value: "Giveaway",
    CampaignKind.ALLOWLIST.value: "Campaign",
    CampaignKind.PRESALE.value: "Presale",
}

# Kinds whose ``filled`` counter is bounded by ``capacity``.
BOUNDED_KINDS = frozenset({CampaignKind.ALLOWLIST.value, CampaignKind.PRESALE.value})


def parse_kind(segment: str) -> CampaignKind | None:
    return KIND_ALIASES.get(segment.lower())


def kind_label(campaign: Campaign) -> str:
    return KIND_LABELS.get(campaign.kind, "Campaign")


async def get_campaign(db: AsyncSession, campaign_id: str, *, fresh: bool = False) -> Campaign:
    """Load a campaign or raise NotFoundError. ``fresh`` bypasses the identity map."""
    stmt = select(Campaign).where(Campaign.id == campaign_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    campaign = (await db.execute(stmt)).scalar_one_or_none()
    if campaign is None:
        raise NotFoundError("Campaign", message="Campaign not found")
    return campaign


async def get_community(db: AsyncSession, community_id: int) -> Community:
    community = await db.get(Community, community_id)
    if community is None:
        raise NotFoundError("Community", message="Community not found")
    return community


def ensure_owner(community: Community, actor: User) -> None:
    """Community owners (and admins) manage their campaigns."""
    if community.owner_user_id != actor.id and not actor.is_admin:
        raise AuthorizationError("Not authorized")


async def create_campaign(
    db: AsyncSession,
    owner: User,
    kind: CampaignKind,
    body: CampaignCreateRequest,
    *,
    now: datetime | None = None,
) -> Campaign:
    """Create a campaign. Status is ACTIVE or UPCOMING depending on ``starts_at``."""
    now = now or utcnow()
    community = await get_community(db, body.community_id)
    ensure_owner(community, owner)

    starts_at = as_utc(body.starts_at)
    ends_at = as_utc(body.ends_at)
    if kind != CampaignKind.ALLOWLIST and ends_at is None:
        raise ValidationError("ends_at is required")
    if starts_at and ends_at and ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at")
    if ends_at is not None and ends_at <= now:
        raise ValidationError("ends_at must be in the future")
    if kind == CampaignKind.GIVEAWAY and not body.prize:
        raise ValidationError("Prize required")

    status = CampaignStatus.UPCOMING if starts_at and starts_at > now else CampaignStatus.ACTIVE
    campaign = Campaign(
        community_id=community.id,
        kind=kind.value,
        title=body.title.strip(),
        description=body.description,
        prize=body.prize,
        chain=body.chain.value,
        capacity=body.capacity,
        max_per_wallet=body.max_per_wallet if kind == CampaignKind.PRESALE else None,
        unit_price=body.unit_price if kind == CampaignKind.PRESALE else None,
        status=status.value,
        starts_at=starts_at,
        ends_at=ends_at,
        is_agent_eligible=body.is_agent_eligible and kind != CampaignKind.PRESALE,
        requires_x_follow=body.requires_x_follow,
        x_account_to_follow=body.x_account_to_follow,
        requires_discord=body.requires_discord,
        token_gate_address=body.token_gate_address,
        token_gate_amount=body.token_gate_amount,
    )
    db.add(campaign)
    await db.commit()

    logger.info(
        "campaign_created",
        campaign_id=campaign.id,
        kind=campaign.kind,
        community_id=community.id,
        status=campaign.status,
    )
    return campaign


async def list_campaigns(
    db: AsyncSession,
    kind: CampaignKind,
    *,
    status: CampaignStatus | None = CampaignStatus.ACTIVE,
    community_id: int | None = None,
    limit: int = 50,
) -> list[Campaign]:
    stmt = select(Campaign).where(Campaign.kind == kind.value)
    if status is not None:
        stmt = stmt.where(Campaign.status == status.value)
    if community_id is not None:
        stmt = stmt.where(Campaign.community_id == community_id)
    stmt = stmt.order_by(Campaign.created_at.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def activate_if_started(db: AsyncSession, campaign: Campaign, *, now: datetime | None = None) -> bool:
    """Move an UPCOMING campaign to ACTIVE once its window opens.

    Forward-only and conditional, so racing callers promote it at most once.
    Returns True if this call changed the status.
    """
    now = now or utcnow()
    starts_at = as_utc(campaign.starts_at)
    if campaign.status != CampaignStatus.UPCOMING.value or (starts_at is not None and starts_at > now):
        return False
    result = await db.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id, Campaign.status == CampaignStatus.UPCOMING.value)
        .values(status=CampaignStatus.ACTIVE.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(campaign)
    if result.rowcount == 1:
        logger.info("campaign_activated", campaign_id=campaign.id)
        return True
    return False
