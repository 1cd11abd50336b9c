"""Shared test fixtures.

Every test gets a fresh SQLite database (aiosqlite) with the ORM schema,
no Redis, and in-memory fakes for the notification, announcement and price
dependencies.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents.service import register_agent
from communiclaw.auth.jwt import create_access_token
from communiclaw.billing.prices import CryptoPrices, get_price_oracle
from communiclaw.campaigns.entries import submit
from communiclaw.config import get_settings
from communiclaw.database import close_db, get_engine, get_session_factory, init_db
from communiclaw.db.base import Base
from communiclaw.db.models import (
    Agent,
    Campaign,
    CampaignKind,
    CampaignStatus,
    Challenge,
    Community,
    Entry,
    EntryMethod,
    User,
    Wallet,
)
from communiclaw.main import create_app
from communiclaw.notifications.sinks import AnnouncedWinner, get_announcement_sink, get_notification_sink
from communiclaw.timeutils import utcnow


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, str, str | None]] = []

    async def notify(self, user_id: int, title: str, message: str, link: str | None = None) -> None:
        self.sent.append((user_id, title, message, link))


class FakeAnnouncer:
    def __init__(self) -> None:
        self.announcements: list[tuple[str, list[AnnouncedWinner]]] = []

    async def announce_winners(
        self,
        community: Community,
        campaign: Campaign,
        winners: list[AnnouncedWinner],
    ) -> bool:
        self.announcements.append((campaign.id, winners))
        return True


class FakeOracle:
    def __init__(self, btc: str = "50000", sol: str = "100") -> None:
        self.prices = CryptoPrices(btc=Decimal(btc), sol=Decimal(sol), source="fake")

    async def get_prices(self) -> CryptoPrices:
        return self.prices


class Factory:
    """Builds rows directly through the ORM."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def user(
        self,
        display_name: str | None = None,
        *,
        x_handle: str | None = None,
        is_admin: bool = False,
        is_banned: bool = False,
    ) -> User:
        user = User(
            display_name=display_name or f"user{self._next()}",
            x_handle=x_handle,
            is_admin=is_admin,
            is_banned=is_banned,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def wallet(self, user: User, address: str, chain: str = "SOL", *, is_primary: bool = True) -> Wallet:
        wallet = Wallet(user_id=user.id, address=address, chain=chain, is_primary=is_primary)
        self.db.add(wallet)
        await self.db.commit()
        return wallet

    async def community(self, owner: User, *, webhook: str | None = None) -> Community:
        n = self._next()
        community = Community(
            owner_user_id=owner.id,
            name=f"Community {n}",
            slug=f"community-{n}",
            discord_webhook_url=webhook,
        )
        self.db.add(community)
        await self.db.commit()
        return community

    async def campaign(
        self,
        community: Community,
        kind: CampaignKind = CampaignKind.GIVEAWAY,
        *,
        capacity: int = 3,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        ends_at: datetime | None = None,
        **fields: object,
    ) -> Campaign:
        campaign = Campaign(
            community_id=community.id,
            kind=kind.value,
            title=f"{kind.value.title()} {self._next()}",
            prize="1 NFT" if kind == CampaignKind.GIVEAWAY else None,
            capacity=capacity,
            status=status.value,
            ends_at=ends_at or utcnow() + timedelta(days=1),
            **fields,
        )
        self.db.add(campaign)
        await self.db.commit()
        return campaign

    async def entry(self, campaign: Campaign, user: User, *, wallet_address: str | None = None) -> Entry:
        """A raffle entry inserted directly, bypassing the ledger."""
        entry = Entry(
            campaign_id=campaign.id,
            user_id=user.id,
            identity_key=f"user:{user.id}",
            wallet_address=wallet_address,
            entry_method=EntryMethod.RAFFLE.value,
        )
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def agent(self, user: User, name: str = "bot") -> tuple[Agent, str]:
        return await register_agent(self.db, user.id, name)

    async def solved_token(self, agent: Agent, *, now: datetime | None = None) -> str:
        """A solved, unused challenge token valid for ten minutes."""
        now = now or utcnow()
        challenge = Challenge(
            agent_id=agent.id,
            question_id=0,
            answer="C",
            solved=True,
            expires_at=now + timedelta(minutes=10),
            created_at=now,
        )
        self.db.add(challenge)
        await self.db.commit()
        return challenge.token


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[None, None]:
    """Fresh SQLite database with all tables; Redis disabled."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    monkeypatch.setenv("CCL_DATABASE_URL", url)
    monkeypatch.setenv("CCL_REDIS_URL", "")
    monkeypatch.setenv("CCL_JWT_SECRET_KEY", "test-secret-key-with-at-least-32-bytes!!")
    get_settings.cache_clear()

    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def factory(db_session: AsyncSession) -> Factory:
    return Factory(db_session)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def announcer() -> FakeAnnouncer:
    return FakeAnnouncer()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest_asyncio.fixture
async def client(
    database: None,
    notifier: FakeNotifier,
    announcer: FakeAnnouncer,
    oracle: FakeOracle,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with external collaborators faked."""
    app = create_app()
    app.dependency_overrides[get_notification_sink] = lambda: notifier
    app.dependency_overrides[get_announcement_sink] = lambda: announcer
    app.dependency_overrides[get_price_oracle] = lambda: oracle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Bearer JWT headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def enter(database: None) -> Callable[..., Awaitable[Entry]]:
    """Submit an entry on its own session, the way one request would."""

    async def _enter(campaign_id: str, user: User, **kwargs: object) -> Entry:
        async with get_session_factory()() as session:
            return await submit(session, campaign_id, user, **kwargs)

    return _enter
