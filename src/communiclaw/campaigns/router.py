"""Campaign API: list/create by kind, detail, enter, draw and winners export."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.auth.dependencies import Caller, get_caller, get_current_user
from communiclaw.campaigns import draw as draw_engine
from communiclaw.campaigns.entries import submit
from communiclaw.campaigns.schemas import (
    CampaignCreateRequest,
    CampaignResponse,
    DrawResponse,
    EnterRequest,
    EntryResponse,
    ExportedWinner,
    WinnersExportResponse,
    campaign_response,
    entry_response,
    winner_response,
)
from communiclaw.campaigns.service import create_campaign, get_campaign, list_campaigns, parse_kind
from communiclaw.database import get_session
from communiclaw.db.models import CampaignStatus, User
from communiclaw.errors import NotFoundError
from communiclaw.notifications.sinks import (
    AnnouncementSink,
    NotificationSink,
    get_announcement_sink,
    get_notification_sink,
)

router = APIRouter(prefix="/api/v1/campaigns", tags=["Campaigns"])


@router.get("/{kind_or_id}", response_model=None)
async def list_or_get_campaign(
    kind_or_id: str,
    status: CampaignStatus | None = Query(None),
    community_id: int | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> list[CampaignResponse] | CampaignResponse:
    """``/campaigns/giveaways`` lists a kind; ``/campaigns/<uuid>`` returns one campaign."""
    kind = parse_kind(kind_or_id)
    if kind is None:
        return campaign_response(await get_campaign(db, kind_or_id))
    campaigns = await list_campaigns(
        db,
        kind,
        status=status or CampaignStatus.ACTIVE,
        community_id=community_id,
    )
    return [campaign_response(c) for c in campaigns]


@router.post("/{kind}", response_model=CampaignResponse, status_code=201)
async def create(
    kind: str,
    body: CampaignCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CampaignResponse:
    parsed = parse_kind(kind)
    if parsed is None:
        raise NotFoundError("Campaign kind", message=f"Unknown campaign kind '{kind}'")
    campaign = await create_campaign(db, user, parsed, body)
    return campaign_response(campaign)


@router.post("/{campaign_id}/enter", response_model=EntryResponse, status_code=201)
async def enter(
    campaign_id: str,
    body: EnterRequest | None = None,
    challenge_token: str | None = Header(None, alias="X-Challenge-Token"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
) -> EntryResponse:
    """Enter a giveaway or allowlist, or buy presale units. Agents must send a challenge token."""
    body = body or EnterRequest()
    entry = await submit(
        db,
        campaign_id,
        caller.user,
        wallet_address=body.wallet_address,
        quantity=body.quantity,
        agent=caller.agent,
        challenge_token=challenge_token,
        x_username=body.x_username,
        discord_username=body.discord_username,
    )
    return entry_response(entry)


@router.post("/{campaign_id}/draw", response_model=DrawResponse)
async def draw(
    campaign_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notification_sink),
    announcer: AnnouncementSink = Depends(get_announcement_sink),
) -> DrawResponse:
    winners = await draw_engine.draw(db, campaign_id, actor=user, notifier=notifier, announcer=announcer)
    campaign = await get_campaign(db, campaign_id)
    return DrawResponse(
        campaign_id=campaign.id,
        status=campaign.status,
        winners=[winner_response(w) for w in winners],
    )


@router.get("/{campaign_id}/winners", response_model=None)
async def export_winners(
    campaign_id: str,
    format: Literal["json", "csv"] = Query("json"),  # noqa: A002, B008
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WinnersExportResponse | Response:
    export = await draw_engine.export_winners(db, campaign_id, user)
    if format == "csv":
        return Response(
            content=export.to_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
        )
    return WinnersExportResponse(
        campaign_id=export.campaign.id,
        title=export.campaign.title,
        community=export.community.name,
        capacity=export.campaign.capacity,
        winners=[ExportedWinner(**row) for row in export.rows],
    )
