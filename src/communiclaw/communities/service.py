"""Community creation and lookup."""

from __future__ import annotations

import re

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.db.models import Campaign, CampaignStatus, Community, User
from communiclaw.errors import ConflictError, NotFoundError, ValidationError

logger = structlog.get_logger()

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _NON_SLUG.sub("-", value.lower()).strip("-")


async def create_community(
    db: AsyncSession,
    owner: User,
    name: str,
    slug: str,
    discord_webhook_url: str | None = None,
) -> Community:
    clean_slug = slugify(slug)
    if not clean_slug:
        raise ValidationError("Invalid slug")
    if discord_webhook_url and not discord_webhook_url.startswith("https://"):
        raise ValidationError("Discord webhook URL must use https")

    existing = await db.execute(select(Community.id).where(Community.slug == clean_slug))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("This URL slug is already taken")

    community = Community(
        owner_user_id=owner.id,
        name=name.strip(),
        slug=clean_slug,
        discord_webhook_url=discord_webhook_url or None,
    )
    db.add(community)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("This URL slug is already taken") from e

    logger.info("community_created", community_id=community.id, owner_user_id=owner.id, slug=clean_slug)
    return community


async def get_by_slug(db: AsyncSession, slug: str) -> Community:
    result = await db.execute(select(Community).where(Community.slug == slug.lower()))
    community = result.scalar_one_or_none()
    if community is None:
        raise NotFoundError("Community", message="Community not found")
    return community


async def count_active_campaigns(db: AsyncSession, community_id: int) -> int:
    result = await db.execute(
        select(func.count(Campaign.id)).where(
            Campaign.community_id == community_id,
            Campaign.status == CampaignStatus.ACTIVE.value,
        )
    )
    return int(result.scalar_one())
