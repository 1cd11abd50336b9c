"""
Notification and announcement sinks.

The draw engine only depends on the two protocols below. Production wiring
persists notifications and posts announcements to a community's Discord
webhook; tests override the FastAPI dependencies with in-memory fakes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog
from redis.exceptions import RedisError

from communiclaw.config import get_settings
from communiclaw.database import get_session_factory
from communiclaw.db.models import Campaign, Community, Notification
from communiclaw.redis_client import get_redis_or_none
from communiclaw.timeutils import utcnow

logger = structlog.get_logger()

NOTIFICATIONS_CHANNEL = "pubsub:notifications"
WINNER_EMBED_COLOR = 0xF59E0B


@dataclass(frozen=True)
class AnnouncedWinner:
    x_handle: str | None
    name: str | None
    wallet_address: str | None

    @property
    def label(self) -> str:
        if self.x_handle:
            return f"@{self.x_handle}"
        return self.name or "Anonymous"


class NotificationSink(Protocol):
    async def notify(self, user_id: int, title: str, message: str, link: str | None = None) -> None: ...


class AnnouncementSink(Protocol):
    async def announce_winners(
        self,
        community: Community,
        campaign: Campaign,
        winners: list[AnnouncedWinner],
    ) -> bool: ...


class DatabaseNotificationSink:
    """Persist a Notification row and push it on Redis pub/sub when available.

    Uses its own session so a failure here never touches the caller's transaction.
    """

    def __init__(self, notification_type: str = "WIN") -> None:
        self.notification_type = notification_type

    async def notify(self, user_id: int, title: str, message: str, link: str | None = None) -> None:
        async with get_session_factory()() as db:
            notification = Notification(
                user_id=user_id,
                type=self.notification_type,
                title=title,
                message=message,
                link=link,
                created_at=utcnow(),
            )
            db.add(notification)
            await db.commit()

        redis = get_redis_or_none()
        if redis is None:
            return
        payload = {
            "event": "notification",
            "user_id": user_id,
            "data": {
                "id": notification.id,
                "type": notification.type,
                "title": title,
                "message": message,
                "link": link,
            },
        }
        try:
            await redis.publish(NOTIFICATIONS_CHANNEL, json.dumps(payload))
        except RedisError:
            logger.warning("notification_publish_failed", user_id=user_id, exc_info=True)


class DiscordWebhookAnnouncer:
    """Post a winners embed to the community's Discord webhook."""

    def __init__(self, timeout: float | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout if timeout is not None else get_settings().discord_timeout_seconds
        self._client = client

    @staticmethod
    def build_payload(community: Community, campaign: Campaign, winners: list[AnnouncedWinner]) -> dict:
        winner_list = "\n".join(f"{i}. **{w.label}**" for i, w in enumerate(winners, start=1))
        return {
            "content": f"\U0001f3c6 **Winners announced for {campaign.title}!**",
            "embeds": [
                {
                    "title": f"\U0001f3c6 Winners Drawn: {campaign.title}",
                    "description": winner_list,
                    "color": WINNER_EMBED_COLOR,
                    "footer": {"text": f"{community.name} · Communiclaw"},
                    "timestamp": utcnow().isoformat(),
                }
            ],
        }

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> None:
        response = await client.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    async def announce_winners(
        self,
        community: Community,
        campaign: Campaign,
        winners: list[AnnouncedWinner],
    ) -> bool:
        """Returns False when the community has no webhook or the post fails."""
        url = community.discord_webhook_url
        if not url:
            return False

        payload = self.build_payload(community, campaign, winners)
        try:
            if self._client is not None:
                await self._post(self._client, url, payload)
            else:
                async with httpx.AsyncClient() as client:
                    await self._post(client, url, payload)
        except httpx.HTTPError:
            logger.warning("discord_announce_failed", community_id=community.id, campaign_id=campaign.id, exc_info=True)
            return False

        logger.info("discord_announced", community_id=community.id, campaign_id=campaign.id, winners=len(winners))
        return True


def get_notification_sink() -> NotificationSink:
    """FastAPI dependency."""
    return DatabaseNotificationSink()


def get_announcement_sink() -> AnnouncementSink:
    """FastAPI dependency."""
    return DiscordWebhookAnnouncer()
