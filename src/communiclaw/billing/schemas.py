"""Pydantic schemas for crypto checkout."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class CryptoPayRequest(BaseModel):
    plan: str = Field(min_length=1, max_length=16)
    chain: str = Field(min_length=1, max_length=8)


class PaymentRequestResponse(BaseModel):
    id: str
    plan: str
    chain: str
    amount_usd: Decimal
    expected_amount_raw: str
    memo: str
    status: str
    created_at: datetime


class CryptoPayResponse(BaseModel):
    payment: PaymentRequestResponse
    amount: str
    address: str
    memo: str
    amount_sats: int | None = None
    lamports: int | None = None
    price_used: str
