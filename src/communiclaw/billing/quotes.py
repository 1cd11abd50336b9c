"""
Payment quoting: USD plan price to a uniquely identifiable crypto transfer.

BTC has no memo field, so the amount itself carries identity: a random
1..999 satoshi salt is added to the converted base amount. Solana transfers
carry the memo, so SOL amounts are quoted without a salt.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.billing.prices import CryptoPrices, PriceOracle
from communiclaw.config import get_settings
from communiclaw.db.models import Chain, PaymentRequest, PaymentStatus, User
from communiclaw.errors import ConflictError, ValidationError
from communiclaw.timeutils import utcnow

logger = structlog.get_logger()

SATS_PER_BTC = Decimal(100_000_000)
LAMPORTS_PER_SOL = Decimal(1_000_000_000)
MAX_BTC_SALT_SATS = 999


@dataclass(frozen=True)
class PaymentQuote:
    plan: str
    chain: str
    amount_usd: Decimal
    amount: str
    address: str
    memo: str
    expected_amount_raw: int
    price_used: str
    amount_sats: int | None = None
    lamports: int | None = None


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def plan_price_usd(plan: str) -> Decimal:
    """Plan base price plus the flat crypto processing fee."""
    settings = get_settings()
    base = settings.plan_prices_usd.get(plan)
    if base is None:
        raise ValidationError("Invalid plan", valid_plans=sorted(settings.plan_prices_usd))
    return base + settings.crypto_flat_fee_usd


def make_memo(user_id: int, now: datetime) -> str:
    return f"comm-{str(user_id)[-6:]}-{int(now.timestamp() * 1000)}"


def build_quote(
    plan: str,
    chain: str,
    prices: CryptoPrices,
    memo: str,
    *,
    rng: random.Random | None = None,
) -> PaymentQuote:
    """Pure conversion of a plan price at ``prices`` into a transfer amount."""
    settings = get_settings()
    usd = plan_price_usd(plan)

    if chain == Chain.BTC.value:
        base_sats = round_half_up(usd / prices.btc * SATS_PER_BTC)
        sats = base_sats + (rng or random.SystemRandom()).randint(1, MAX_BTC_SALT_SATS)
        if sats < settings.btc_dust_threshold_sats:
            raise ValidationError("BTC amount below dust threshold. Contact support.")
        return PaymentQuote(
            plan=plan,
            chain=chain,
            amount_usd=usd,
            amount=f"{Decimal(sats) / SATS_PER_BTC:.8f}",
            address=settings.btc_treasury_address,
            memo=memo,
            expected_amount_raw=sats,
            price_used=f"BTC @ ${prices.btc:,.2f}",
            amount_sats=sats,
        )

    if chain == Chain.SOL.value:
        lamports = round_half_up(usd / prices.sol * LAMPORTS_PER_SOL)
        sol_amount = (Decimal(lamports) / LAMPORTS_PER_SOL).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        return PaymentQuote(
            plan=plan,
            chain=chain,
            amount_usd=usd,
            amount=f"{sol_amount:.4f}",
            address=settings.sol_treasury_address,
            memo=memo,
            expected_amount_raw=lamports,
            price_used=f"SOL @ ${prices.sol:,.2f}",
            lamports=lamports,
        )

    raise ValidationError("Invalid chain", valid_chains=[Chain.BTC.value, Chain.SOL.value])


async def quote_payment(
    db: AsyncSession,
    user: User,
    plan: str,
    chain: str,
    oracle: PriceOracle,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> tuple[PaymentRequest, PaymentQuote]:
    """Quote a plan on ``chain`` at live prices and persist a PENDING request."""
    now = now or utcnow()
    plan = plan.upper()
    chain = chain.upper()
    plan_price_usd(plan)
    if chain not in (Chain.BTC.value, Chain.SOL.value):
        raise ValidationError("Invalid chain", valid_chains=[Chain.BTC.value, Chain.SOL.value])

    prices = await oracle.get_prices()
    quote = build_quote(plan, chain, prices, make_memo(user.id, now), rng=rng)

    payment = PaymentRequest(
        user_id=user.id,
        plan=quote.plan,
        chain=quote.chain,
        amount_usd=quote.amount_usd,
        expected_amount_raw=quote.expected_amount_raw,
        address=quote.address,
        memo=quote.memo,
        price_used=quote.price_used,
        status=PaymentStatus.PENDING.value,
        created_at=now,
    )
    db.add(payment)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Duplicate payment request. Please retry.") from e

    logger.info(
        "payment_quoted",
        payment_id=payment.id,
        user_id=user.id,
        plan=plan,
        chain=chain,
        expected_amount_raw=quote.expected_amount_raw,
        source=prices.source,
    )
    return payment, quote
