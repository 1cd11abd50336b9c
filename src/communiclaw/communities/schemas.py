"""Pydantic schemas for communities."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CommunityCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    slug: str = Field(min_length=1, max_length=64)
    discord_webhook_url: str | None = Field(default=None, max_length=512)


class CommunityResponse(BaseModel):
    id: int
    owner_user_id: int
    name: str
    slug: str
    has_discord_webhook: bool
    active_campaigns: int = 0
    created_at: datetime
