"""
Draw engine: unbiased winner selection for giveaways.

A draw picks ``min(capacity - winner_count, eligible)`` entries with a
Fisher-Yates shuffle, then records them in one transaction guarded by a
compare-and-swap on ``winner_count``. Notifications and the Discord
announcement go out after commit and never undo a draw.
"""

from __future__ import annotations

import csv
import io
import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from communiclaw.campaigns.entries import eligible_for_draw
from communiclaw.campaigns.service import ensure_owner, get_campaign, get_community
from communiclaw.db.models import (
    Campaign,
    CampaignKind,
    CampaignStatus,
    Community,
    Entry,
    User,
    Winner,
)
from communiclaw.errors import AppError, ConflictError, StateError
from communiclaw.notifications.sinks import AnnouncedWinner, AnnouncementSink, NotificationSink
from communiclaw.timeutils import as_utc, utcnow

logger = structlog.get_logger()

T = TypeVar("T")


def shuffle_entries(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Fisher-Yates shuffle. Every permutation is equally likely for a uniform ``rng``."""
    rng = rng or random.SystemRandom()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


async def _users_by_id(db: AsyncSession, user_ids: set[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    return {u.id: u for u in result.scalars().all()}


async def _fan_out(
    community: Community,
    campaign: Campaign,
    chosen: list[Entry],
    users: dict[int, User],
    notifier: NotificationSink,
    announcer: AnnouncementSink,
) -> None:
    """Best-effort side effects of a committed draw. Touches no database state."""
    link = f"/c/{community.slug}/giveaways/{campaign.id}"
    message = f'Congratulations! You won the "{campaign.title}" giveaway. Prize: {campaign.prize}'

    for entry in chosen:
        try:
            await notifier.notify(entry.user_id, "You won a giveaway!", message, link)
        except Exception:
            logger.warning("winner_notify_failed", campaign_id=campaign.id, user_id=entry.user_id, exc_info=True)

    announced = [
        AnnouncedWinner(
            x_handle=users[e.user_id].x_handle if e.user_id in users else None,
            name=users[e.user_id].display_name if e.user_id in users else None,
            wallet_address=e.wallet_address,
        )
        for e in chosen
    ]
    try:
        await announcer.announce_winners(community, campaign, announced)
    except Exception:
        logger.warning("winner_announce_failed", campaign_id=campaign.id, exc_info=True)


async def draw(
    db: AsyncSession,
    campaign_id: str,
    *,
    actor: User,
    notifier: NotificationSink,
    announcer: AnnouncementSink,
    rng: random.Random | None = None,
    finalize: bool = True,
    now: datetime | None = None,
) -> list[Winner]:
    """Draw the remaining winners of a giveaway.

    ``finalize=True`` (owner draw) always completes the giveaway.
    ``finalize=False`` (expiry sweep) completes it only once every winner slot
    is filled, so later entries can still be drawn.

    Raises:
        NotFoundError, AuthorizationError: unknown campaign or not the owner.
        StateError: not a giveaway, already drawn, or nothing to draw.
        ConflictError: another draw committed first.
    """
    now = now or utcnow()
    campaign = await get_campaign(db, campaign_id, fresh=True)
    community = await get_community(db, campaign.community_id)
    ensure_owner(community, actor)

    if campaign.kind != CampaignKind.GIVEAWAY.value:
        raise StateError("Only giveaways can be drawn")
    if campaign.status == CampaignStatus.COMPLETED.value:
        raise StateError("Already drawn")

    eligible = await eligible_for_draw(db, campaign.id)
    if not eligible:
        raise StateError("No entries")

    seen = campaign.winner_count
    k = min(campaign.capacity - seen, len(eligible))
    if k <= 0:
        raise StateError("All winners already drawn")

    chosen = shuffle_entries(eligible, rng)[:k]
    completes = finalize or seen + k >= campaign.capacity
    values: dict[str, object] = {"winner_count": seen + k}
    if completes:
        values["status"] = CampaignStatus.COMPLETED.value

    try:
        claimed = await db.execute(
            update(Campaign)
            .where(
                Campaign.id == campaign.id,
                Campaign.winner_count == seen,
                Campaign.status != CampaignStatus.COMPLETED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise ConflictError("Draw already in progress or completed")

        winners = [
            Winner(campaign_id=campaign.id, entry_id=e.id, user_id=e.user_id, drawn_at=now) for e in chosen
        ]
        db.add_all(winners)
        await db.flush()
        users = await _users_by_id(db, {e.user_id for e in chosen})
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Draw already in progress or completed") from e
    except Exception:
        await db.rollback()
        raise

    # The CAS above bypassed the session; mirror what it committed.
    for key, value in values.items():
        set_committed_value(campaign, key, value)
    logger.info(
        "draw_completed",
        campaign_id=campaign.id,
        winners=k,
        eligible=len(eligible),
        status=campaign.status,
    )

    await _fan_out(community, campaign, chosen, users, notifier, announcer)
    return winners


async def draw_expired(
    db: AsyncSession,
    *,
    actor: User,
    notifier: NotificationSink,
    announcer: AnnouncementSink,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> dict[str, int]:
    """Draw every ended giveaway that still has winner slots open.

    Returns ``{campaign_id: winners_drawn}`` for the campaigns that drew.
    A failing campaign is logged and skipped.
    """
    now = now or utcnow()
    result = await db.execute(
        select(Campaign.id).where(
            Campaign.kind == CampaignKind.GIVEAWAY.value,
            Campaign.status.in_([CampaignStatus.ACTIVE.value, CampaignStatus.CLOSED.value]),
            Campaign.ends_at.is_not(None),
            Campaign.ends_at < now,
            Campaign.winner_count < Campaign.capacity,
        )
    )
    drawn: dict[str, int] = {}
    for campaign_id in result.scalars().all():
        try:
            winners = await draw(
                db,
                campaign_id,
                actor=actor,
                notifier=notifier,
                announcer=announcer,
                rng=rng,
                finalize=False,
                now=now,
            )
        except AppError as e:
            logger.info("expired_draw_skipped", campaign_id=campaign_id, reason=e.message)
        except Exception:
            await db.rollback()
            logger.exception("expired_draw_failed", campaign_id=campaign_id)
        else:
            drawn[campaign_id] = len(winners)
            continue
        # A rollback expires every loaded instance, the actor included.
        await db.refresh(actor)

    logger.info("expired_draws_swept", campaigns=len(drawn), winners=sum(drawn.values()))
    return drawn


EXPORT_COLUMNS = (
    ("position", "Position"),
    ("user_id", "User ID"),
    ("name", "Name"),
    ("x_handle", "X Handle"),
    ("wallet_address", "Wallet Address"),
    ("discord_username", "Discord Username"),
    ("drawn_at", "Drawn At"),
)


@dataclass
class WinnersExport:
    campaign: Campaign
    community: Community
    rows: list[dict[str, object]]

    @property
    def filename(self) -> str:
        return f"{self.community.slug}-giveaway-winners.csv"

    def to_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow([header for _, header in EXPORT_COLUMNS])
        for row in self.rows:
            writer.writerow([_csv_cell(row[key]) for key, _ in EXPORT_COLUMNS])
        return buf.getvalue()


def _csv_cell(value: object) -> object:
    return value.isoformat() if isinstance(value, datetime) else value


async def export_winners(db: AsyncSession, campaign_id: str, actor: User) -> WinnersExport:
    """Owner-only winners list in draw order."""
    campaign = await get_campaign(db, campaign_id)
    community = await get_community(db, campaign.community_id)
    ensure_owner(community, actor)

    result = await db.execute(
        select(Winner, Entry, User)
        .join(Entry, Entry.id == Winner.entry_id)
        .join(User, User.id == Winner.user_id)
        .where(Winner.campaign_id == campaign.id)
        .order_by(Winner.drawn_at.asc(), Winner.id.asc())
    )
    rows: list[dict[str, object]] = []
    for position, (winner, entry, user) in enumerate(result.all(), start=1):
        rows.append(
            {
                "position": position,
                "user_id": user.id,
                "name": user.display_name or "N/A",
                "x_handle": f"@{user.x_handle}" if user.x_handle else "N/A",
                "wallet_address": entry.wallet_address or "N/A",
                "discord_username": entry.discord_username or "N/A",
                "drawn_at": as_utc(winner.drawn_at),
            }
        )
    return WinnersExport(campaign=campaign, community=community, rows=rows)
