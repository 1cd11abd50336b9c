"""Entry pool: identity rules, eligibility and the submit path for web and agent callers."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents.challenge import consume_token
from communiclaw.agents.service import log_activity
from communiclaw.campaigns.ledger import Reservation, check_reservable, reserve
from communiclaw.campaigns.service import activate_if_started, get_campaign
from communiclaw.config import get_settings
from communiclaw.db.models import (
    Agent,
    Campaign,
    CampaignKind,
    Entry,
    EntryMethod,
    User,
    Wallet,
    Winner,
)
from communiclaw.errors import AuthorizationError, ValidationError
from communiclaw.timeutils import utcnow

logger = structlog.get_logger()

_AGENT_ACTIONS = {
    CampaignKind.GIVEAWAY.value: "ENTER_GIVEAWAY",
    CampaignKind.ALLOWLIST.value: "ENTER_ALLOWLIST",
}


def identity_key(campaign: Campaign, user_id: int, wallet_address: str | None) -> str | None:
    """Uniqueness key of an entry within its campaign.

    One entry per user on giveaways, one per wallet on allowlists. Presale
    orders have no identity key; they are bounded by ``max_per_wallet``.
    """
    if campaign.kind == CampaignKind.GIVEAWAY.value:
        return f"user:{user_id}"
    if campaign.kind == CampaignKind.ALLOWLIST.value:
        if not wallet_address:
            raise ValidationError("Wallet address required")
        return f"wallet:{wallet_address}"
    return None


def _entry_method(campaign: Campaign, agent: Agent | None) -> EntryMethod:
    if agent is not None:
        return EntryMethod.AGENT
    if campaign.kind == CampaignKind.PRESALE.value:
        return EntryMethod.PURCHASE
    if campaign.kind == CampaignKind.ALLOWLIST.value:
        return EntryMethod.FCFS
    return EntryMethod.RAFFLE


async def _find_wallet(
    db: AsyncSession,
    user_id: int,
    *,
    chain: str | None = None,
    address: str | None = None,
) -> Wallet | None:
    """User's wallet: the given address, else primary first (optionally on ``chain``)."""
    stmt = select(Wallet).where(Wallet.user_id == user_id)
    if address is not None:
        stmt = stmt.where(Wallet.address == address)
    if chain is not None:
        stmt = stmt.where(Wallet.chain == chain)
    stmt = stmt.order_by(Wallet.is_primary.desc(), Wallet.created_at.asc()).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


def _check_agent_allowed(campaign: Campaign) -> None:
    if campaign.kind == CampaignKind.PRESALE.value:
        raise AuthorizationError("Agents cannot purchase presale allocations")
    if not campaign.is_agent_eligible:
        raise AuthorizationError("This campaign does not accept agent entries")


async def submit(
    db: AsyncSession,
    campaign_id: str,
    user: User,
    *,
    wallet_address: str | None = None,
    quantity: int = 1,
    agent: Agent | None = None,
    challenge_token: str | None = None,
    x_username: str | None = None,
    discord_username: str | None = None,
    now: datetime | None = None,
) -> Entry:
    """Validate eligibility, then reserve and record the entry in one transaction.

    For agents the challenge token is spent in that same transaction, so a
    rejected reservation leaves the token usable.
    """
    now = now or utcnow()
    campaign = await get_campaign(db, campaign_id)
    await activate_if_started(db, campaign, now=now)

    if agent is not None:
        _check_agent_allowed(campaign)
    if campaign.kind != CampaignKind.PRESALE.value and quantity != 1:
        raise ValidationError("Quantity is only supported for presales")
    check_reservable(campaign, quantity, now)

    wallet: Wallet | None = None
    if agent is not None and campaign.kind == CampaignKind.ALLOWLIST.value:
        wallet = await _find_wallet(db, user.id, chain=campaign.chain)
        if wallet is None:
            raise ValidationError(f"No {campaign.chain} wallet found. Please link one in your dashboard.")
        wallet_address = wallet.address
    elif wallet_address:
        wallet_address = wallet_address.strip()
        wallet = await _find_wallet(db, user.id, address=wallet_address)
    elif campaign.kind == CampaignKind.GIVEAWAY.value:
        wallet = await _find_wallet(db, user.id)
        wallet_address = wallet.address if wallet else None
    else:
        raise ValidationError("Wallet address required")

    if agent is not None and campaign.requires_x_follow:
        x_username = x_username or user.x_handle
    if agent is not None and campaign.requires_discord:
        discord_username = discord_username or user.discord_username

    reservation = Reservation(
        user_id=user.id,
        identity_key=identity_key(campaign, user.id, wallet_address),
        entry_method=_entry_method(campaign, agent),
        quantity=quantity,
        wallet_id=wallet.id if wallet else None,
        wallet_address=wallet_address,
        x_username=x_username,
        discord_username=discord_username,
        entered_by_agent=agent is not None,
    )

    try:
        if agent is not None and get_settings().agent_challenge_required:
            await consume_token(db, agent, challenge_token, now=now)
        entry = await reserve(db, campaign.id, reservation, now=now)
        if agent is not None:
            await log_activity(
                db,
                agent.id,
                _AGENT_ACTIONS[campaign.kind],
                {"campaign_id": campaign.id, "entry_id": entry.id, "wallet_address": wallet_address},
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "entry_created",
        campaign_id=campaign.id,
        entry_id=entry.id,
        user_id=user.id,
        agent_id=agent.id if agent else None,
    )
    return entry


async def eligible_for_draw(db: AsyncSession, campaign_id: str) -> list[Entry]:
    """Entries of a campaign that have not won yet, oldest first."""
    result = await db.execute(
        select(Entry)
        .outerjoin(Winner, Winner.entry_id == Entry.id)
        .where(Entry.campaign_id == campaign_id, Winner.id.is_(None))
        .order_by(Entry.created_at.asc(), Entry.id.asc())
    )
    return list(result.scalars().all())

