"""Admin operations."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.auth.dependencies import get_admin_user
from communiclaw.campaigns.draw import draw_expired
from communiclaw.database import get_session
from communiclaw.db.models import User
from communiclaw.notifications.sinks import (
    AnnouncementSink,
    NotificationSink,
    get_announcement_sink,
    get_notification_sink,
)

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


class DrawExpiredResponse(BaseModel):
    campaigns_drawn: int
    winners_drawn: int
    results: dict[str, int]


@router.post("/campaigns/draw-expired", response_model=DrawExpiredResponse)
async def sweep_expired_giveaways(
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
    notifier: NotificationSink = Depends(get_notification_sink),
    announcer: AnnouncementSink = Depends(get_announcement_sink),
) -> DrawExpiredResponse:
    """Draw winners for every ended giveaway with open winner slots."""
    results = await draw_expired(db, actor=admin, notifier=notifier, announcer=announcer)
    return DrawExpiredResponse(
        campaigns_drawn=len(results),
        winners_drawn=sum(results.values()),
        results=results,
    )
