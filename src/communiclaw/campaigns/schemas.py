"""Pydantic schemas for campaigns, entries and draws."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from communiclaw.db.models import Campaign, Chain, Entry, Winner
from communiclaw.timeutils import as_utc


class CampaignCreateRequest(BaseModel):
    community_id: int
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    prize: str | None = Field(default=None, max_length=200)
    chain: Chain = Chain.SOL
    capacity: int = Field(gt=0, description="Total winners, spots or supply")
    max_per_wallet: int | None = Field(default=None, gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_agent_eligible: bool = False
    requires_x_follow: bool = False
    x_account_to_follow: str | None = Field(default=None, max_length=64)
    requires_discord: bool = False
    token_gate_address: str | None = Field(default=None, max_length=128)
    token_gate_amount: Decimal | None = Field(default=None, ge=0)


class CampaignResponse(BaseModel):
    id: str
    community_id: int
    kind: str
    title: str
    description: str | None
    prize: str | None
    chain: str
    capacity: int
    filled: int
    remaining: int
    winner_count: int
    max_per_wallet: int | None
    unit_price: Decimal | None
    status: str
    starts_at: datetime | None
    ends_at: datetime | None
    is_agent_eligible: bool
    requires_x_follow: bool
    x_account_to_follow: str | None
    requires_discord: bool
    token_gate_address: str | None
    token_gate_amount: Decimal | None
    created_at: datetime


def campaign_response(campaign: Campaign) -> CampaignResponse:
    return CampaignResponse(
        id=campaign.id,
        community_id=campaign.community_id,
        kind=campaign.kind,
        title=campaign.title,
        description=campaign.description,
        prize=campaign.prize,
        chain=campaign.chain,
        capacity=campaign.capacity,
        filled=campaign.filled,
        remaining=max(0, campaign.capacity - campaign.filled),
        winner_count=campaign.winner_count,
        max_per_wallet=campaign.max_per_wallet,
        unit_price=campaign.unit_price,
        status=campaign.status,
        starts_at=as_utc(campaign.starts_at),
        ends_at=as_utc(campaign.ends_at),
        is_agent_eligible=campaign.is_agent_eligible,
        requires_x_follow=campaign.requires_x_follow,
        x_account_to_follow=campaign.x_account_to_follow,
        requires_discord=campaign.requires_discord,
        token_gate_address=campaign.token_gate_address,
        token_gate_amount=campaign.token_gate_amount,
        created_at=as_utc(campaign.created_at),
    )


class EnterRequest(BaseModel):
    wallet_address: str | None = Field(default=None, max_length=128)
    quantity: int = Field(default=1, ge=1, le=10_000)
    x_username: str | None = Field(default=None, max_length=64)
    discord_username: str | None = Field(default=None, max_length=64)


class EntryResponse(BaseModel):
    id: str
    campaign_id: str
    user_id: int
    wallet_address: str | None
    quantity: int
    entry_method: str
    entered_by_agent: bool
    created_at: datetime


def entry_response(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        campaign_id=entry.campaign_id,
        user_id=entry.user_id,
        wallet_address=entry.wallet_address,
        quantity=entry.quantity,
        entry_method=entry.entry_method,
        entered_by_agent=entry.entered_by_agent,
        created_at=as_utc(entry.created_at),
    )


class WinnerResponse(BaseModel):
    id: str
    entry_id: str
    user_id: int
    drawn_at: datetime


class DrawResponse(BaseModel):
    campaign_id: str
    status: str
    winners: list[WinnerResponse]


def winner_response(winner: Winner) -> WinnerResponse:
    return WinnerResponse(
        id=winner.id,
        entry_id=winner.entry_id,
        user_id=winner.user_id,
        drawn_at=as_utc(winner.drawn_at),
    )


class ExportedWinner(BaseModel):
    position: int
    user_id: int
    name: str
    x_handle: str
    wallet_address: str
    discord_username: str
    drawn_at: datetime


class WinnersExportResponse(BaseModel):
    campaign_id: str
    title: str
    community: str
    capacity: int
    winners: list[ExportedWinner]
