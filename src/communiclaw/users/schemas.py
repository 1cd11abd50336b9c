"""Pydantic schemas for user wallets."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from communiclaw.db.models import Chain


class WalletCreateRequest(BaseModel):
    address: str = Field(min_length=1, max_length=128)
    chain: Chain
    is_primary: bool = False


class WalletResponse(BaseModel):
    id: int
    address: str
    chain: str
    is_primary: bool
    created_at: datetime
