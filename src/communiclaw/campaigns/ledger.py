"""Capacity ledger: atomic reservation of spots, units or entries on a campaign.

A reservation is a single conditional UPDATE on the campaign row followed by
the entry insert, both inside the caller's transaction::

    UPDATE campaigns SET filled = filled + :q
     WHERE id = :id AND status = 'ACTIVE' AND filled + :q <= capacity

The row lock taken by the UPDATE serialises concurrent reservations, so
``filled`` can never exceed ``capacity`` no matter how many callers race.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.campaigns.service import BOUNDED_KINDS, get_campaign, kind_label
from communiclaw.db.models import Campaign, CampaignKind, CampaignStatus, Entry, EntryMethod
from communiclaw.errors import CapacityError, ConflictError, StateError, ValidationError
from communiclaw.timeutils import as_utc, utcnow

logger = structlog.get_logger()


@dataclass
class Reservation:
    """Who is reserving, and the entry metadata recorded alongside."""

    user_id: int
    identity_key: str | None
    entry_method: EntryMethod
    quantity: int = 1
    wallet_id: int | None = None
    wallet_address: str | None = None
    x_username: str | None = None
    discord_username: str | None = None
    entered_by_agent: bool = False


def _capacity_message(campaign: Campaign) -> str:
    if campaign.kind == CampaignKind.PRESALE.value:
        return "Not enough supply remaining"
    return "No spots remaining"


def check_reservable(campaign: Campaign, quantity: int, now: datetime) -> None:
    """Preconditions in order: active, capacity left, window still open."""
    label = kind_label(campaign)
    bounded = campaign.kind in BOUNDED_KINDS
    if campaign.status != CampaignStatus.ACTIVE.value:
        # A campaign closed by filling up reports the capacity, not the status.
        if bounded and campaign.status == CampaignStatus.CLOSED.value and campaign.filled >= campaign.capacity:
            raise CapacityError(_capacity_message(campaign), remaining=0)
        raise StateError(f"{label} is not active", status=campaign.status)
    if bounded and campaign.filled + quantity > campaign.capacity:
        raise CapacityError(_capacity_message(campaign), remaining=max(0, campaign.capacity - campaign.filled))
    ends_at = as_utc(campaign.ends_at)
    if ends_at is not None and ends_at <= now:
        raise StateError(f"{label} has ended")


async def _existing_entry_id(db: AsyncSession, campaign_id: str, identity_key: str | None) -> str | None:
    if identity_key is None:
        return None
    result = await db.execute(
        select(Entry.id).where(Entry.campaign_id == campaign_id, Entry.identity_key == identity_key)
    )
    return result.scalar_one_or_none()


async def _wallet_quantity(db: AsyncSession, campaign_id: str, wallet_address: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(Entry.quantity), 0)).where(
            Entry.campaign_id == campaign_id,
            Entry.wallet_address == wallet_address,
        )
    )
    return int(result.scalar_one())


async def reserve(
    db: AsyncSession,
    campaign_id: str,
    reservation: Reservation,
    *,
    now: datetime | None = None,
) -> Entry:
    """Reserve ``reservation.quantity`` on a campaign and record the entry.

    Does not commit. On any error the caller rolls back, which also undoes
    the counter increment.

    Raises:
        NotFoundError, StateError, CapacityError: preconditions failed.
        ValidationError: presale per-wallet limit exceeded.
        ConflictError: the identity already holds an entry (``entry_id`` attached).
    """
    now = now or utcnow()
    quantity = reservation.quantity
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    campaign = await get_campaign(db, campaign_id, fresh=True)
    check_reservable(campaign, quantity, now)

    # Duplicate identities are reported before touching the counter.
    existing_id = await _existing_entry_id(db, campaign_id, reservation.identity_key)
    if existing_id is not None:
        raise ConflictError("Already entered", entry_id=existing_id)

    bounded = campaign.kind in BOUNDED_KINDS
    stmt = update(Campaign).where(
        Campaign.id == campaign_id,
        Campaign.status == CampaignStatus.ACTIVE.value,
    )
    if bounded:
        stmt = stmt.where(Campaign.filled + quantity <= Campaign.capacity)
    claimed = await db.execute(
        stmt.values(filled=Campaign.filled + quantity).execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        # Lost a race: re-read to report the precise reason.
        campaign = await get_campaign(db, campaign_id, fresh=True)
        check_reservable(campaign, quantity, now)
        raise CapacityError(_capacity_message(campaign))

    if campaign.kind == CampaignKind.PRESALE.value and campaign.max_per_wallet and reservation.wallet_address:
        # Row is locked by the increment above, so this sum cannot race.
        prior = await _wallet_quantity(db, campaign_id, reservation.wallet_address)
        if prior + quantity > campaign.max_per_wallet:
            raise ValidationError(
                f"Maximum {campaign.max_per_wallet} per wallet",
                already_purchased=prior,
            )

    entry = Entry(
        campaign_id=campaign_id,
        user_id=reservation.user_id,
        identity_key=reservation.identity_key,
        wallet_id=reservation.wallet_id,
        wallet_address=reservation.wallet_address,
        x_username=reservation.x_username,
        discord_username=reservation.discord_username,
        quantity=quantity,
        entry_method=reservation.entry_method.value,
        entered_by_agent=reservation.entered_by_agent,
        created_at=now,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        existing_id = await _existing_entry_id(db, campaign_id, reservation.identity_key)
        raise ConflictError("Already entered", entry_id=existing_id) from e

    if bounded:
        closed = await db.execute(
            update(Campaign)
            .where(
                Campaign.id == campaign_id,
                Campaign.status == CampaignStatus.ACTIVE.value,
                Campaign.filled >= Campaign.capacity,
            )
            .values(status=CampaignStatus.CLOSED.value)
            .execution_options(synchronize_session=False)
        )
        if closed.rowcount == 1:
            logger.info("campaign_filled", campaign_id=campaign_id, capacity=campaign.capacity)

    logger.info(
        "entry_reserved",
        campaign_id=campaign_id,
        entry_id=entry.id,
        user_id=reservation.user_id,
        quantity=quantity,
        method=reservation.entry_method.value,
    )
    return entry
