"""Billing API: crypto checkout quotes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.auth.dependencies import get_current_user
from communiclaw.billing.prices import PriceOracle, get_price_oracle
from communiclaw.billing.quotes import quote_payment
from communiclaw.billing.schemas import CryptoPayRequest, CryptoPayResponse, PaymentRequestResponse
from communiclaw.database import get_session
from communiclaw.db.models import User
from communiclaw.timeutils import as_utc

router = APIRouter(prefix="/api/v1/billing", tags=["Billing"])


@router.post("/crypto-pay", response_model=CryptoPayResponse)
async def crypto_pay(
    body: CryptoPayRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    oracle: PriceOracle = Depends(get_price_oracle),
) -> CryptoPayResponse:
    """Quote a subscription plan in BTC or SOL at live prices."""
    payment, quote = await quote_payment(db, user, body.plan, body.chain, oracle)
    return CryptoPayResponse(
        payment=PaymentRequestResponse(
            id=payment.id,
            plan=payment.plan,
            chain=payment.chain,
            amount_usd=payment.amount_usd,
            expected_amount_raw=str(payment.expected_amount_raw),
            memo=payment.memo,
            status=payment.status,
            created_at=as_utc(payment.created_at),
        ),
        amount=quote.amount,
        address=quote.address,
        memo=quote.memo,
        amount_sats=quote.amount_sats,
        lamports=quote.lamports,
        price_used=quote.price_used,
    )
