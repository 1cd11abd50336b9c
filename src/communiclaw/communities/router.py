"""Community API."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.auth.dependencies import get_current_user
from communiclaw.communities.schemas import CommunityCreateRequest, CommunityResponse
from communiclaw.communities.service import count_active_campaigns, create_community, get_by_slug
from communiclaw.database import get_session
from communiclaw.db.models import Community, User
from communiclaw.timeutils import as_utc

router = APIRouter(prefix="/api/v1/communities", tags=["Communities"])


def _response(community: Community, active_campaigns: int = 0) -> CommunityResponse:
    return CommunityResponse(
        id=community.id,
        owner_user_id=community.owner_user_id,
        name=community.name,
        slug=community.slug,
        has_discord_webhook=bool(community.discord_webhook_url),
        active_campaigns=active_campaigns,
        created_at=as_utc(community.created_at),
    )


@router.post("", response_model=CommunityResponse, status_code=201)
async def create(
    body: CommunityCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CommunityResponse:
    community = await create_community(db, user, body.name, body.slug, body.discord_webhook_url)
    return _response(community)


@router.get("/{slug}", response_model=CommunityResponse)
async def get_community(
    slug: str,
    db: AsyncSession = Depends(get_session),
) -> CommunityResponse:
    community = await get_by_slug(db, slug)
    return _response(community, await count_active_campaigns(db, community.id))
