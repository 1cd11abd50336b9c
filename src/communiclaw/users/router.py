"""Wallet linking for the current user.

Wallets are linked without signature proof; ownership verification belongs
to an external verifier.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.auth.dependencies import get_current_user
from communiclaw.database import get_session
from communiclaw.db.models import User, Wallet
from communiclaw.errors import ConflictError
from communiclaw.timeutils import as_utc
from communiclaw.users.schemas import WalletCreateRequest, WalletResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _response(wallet: Wallet) -> WalletResponse:
    return WalletResponse(
        id=wallet.id,
        address=wallet.address,
        chain=wallet.chain,
        is_primary=wallet.is_primary,
        created_at=as_utc(wallet.created_at),
    )


@router.get("/me/wallets", response_model=list[WalletResponse])
async def list_wallets(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[WalletResponse]:
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user.id)
        .order_by(Wallet.is_primary.desc(), Wallet.created_at.desc())
    )
    return [_response(w) for w in result.scalars().all()]


@router.post("/me/wallets", response_model=WalletResponse, status_code=201)
async def link_wallet(
    body: WalletCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletResponse:
    """Link a wallet. The user's first wallet becomes primary."""
    address = body.address.strip()
    existing = await db.execute(
        select(Wallet).where(Wallet.address == address, Wallet.chain == body.chain.value)
    )
    owner = existing.scalars().first()
    if owner is not None:
        if owner.user_id != user.id:
            raise ConflictError("This wallet is already linked to another account")
        raise ConflictError("Wallet already connected")

    count = await db.execute(select(func.count(Wallet.id)).where(Wallet.user_id == user.id))
    is_primary = body.is_primary or count.scalar_one() == 0
    if is_primary:
        await db.execute(
            update(Wallet)
            .where(Wallet.user_id == user.id)
            .values(is_primary=False)
            .execution_options(synchronize_session=False)
        )

    wallet = Wallet(user_id=user.id, address=address, chain=body.chain.value, is_primary=is_primary)
    db.add(wallet)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Wallet already connected") from e

    logger.info("wallet_linked", user_id=user.id, chain=wallet.chain, is_primary=is_primary)
    return _response(wallet)
