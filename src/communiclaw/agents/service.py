"""Agent registration, key rotation, authentication and activity logging."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents.keys import KEY_PREFIX, generate_api_key, lookup_prefix, verify_api_key
from communiclaw.db.models import Agent, AgentActivity
from communiclaw.errors import AuthError, ConflictError, NotFoundError, ValidationError
from communiclaw.timeutils import utcnow

logger = structlog.get_logger()


async def get_agent_for_user(db: AsyncSession, user_id: int) -> Agent | None:
    result = await db.execute(select(Agent).where(Agent.user_id == user_id))
    return result.scalar_one_or_none()


async def register_agent(db: AsyncSession, user_id: int, name: str) -> tuple[Agent, str]:
    """Create the user's agent. Returns the agent and its plaintext key (shown once)."""
    name = name.strip()
    if not name:
        raise ValidationError("Agent name required")
    if await get_agent_for_user(db, user_id) is not None:
        raise ConflictError("Agent already registered")

    full_key, prefix, key_hash = generate_api_key()
    agent = Agent(user_id=user_id, name=name, key_prefix=prefix, key_hash=key_hash)
    db.add(agent)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Agent already registered") from e

    logger.info("agent_registered", agent_id=agent.id, user_id=user_id)
    return agent, full_key


async def rotate_key(db: AsyncSession, user_id: int) -> tuple[Agent, str]:
    """Replace the agent's key. The previous key stops resolving on commit."""
    agent = await get_agent_for_user(db, user_id)
    if agent is None:
        raise NotFoundError("Agent")

    full_key, prefix, key_hash = generate_api_key()
    agent.key_prefix = prefix
    agent.key_hash = key_hash
    await db.commit()
    logger.info("agent_key_rotated", agent_id=agent.id)
    return agent, full_key


async def update_agent(
    db: AsyncSession,
    user_id: int,
    *,
    is_active: bool | None = None,
    name: str | None = None,
) -> Agent:
    agent = await get_agent_for_user(db, user_id)
    if agent is None:
        raise NotFoundError("Agent")
    if is_active is not None:
        agent.is_active = is_active
    if name is not None and name.strip():
        agent.name = name.strip()
    await db.commit()
    return agent


async def authenticate_agent(db: AsyncSession, raw_key: str) -> Agent:
    """Resolve an active agent from a raw API key, bumping its activity counters."""
    if not raw_key.startswith(KEY_PREFIX):
        raise AuthError("Invalid API key")

    result = await db.execute(select(Agent).where(Agent.key_prefix == lookup_prefix(raw_key)))
    agent = result.scalar_one_or_none()
    if agent is None or not verify_api_key(raw_key, agent.key_hash):
        raise AuthError("Invalid API key")
    if not agent.is_active:
        raise AuthError("Agent is disabled")

    now = utcnow()
    await db.execute(
        update(Agent)
        .where(Agent.id == agent.id)
        .values(last_active_at=now, request_count=Agent.request_count + 1)
    )
    await db.commit()
    await db.refresh(agent)
    return agent


async def log_activity(
    db: AsyncSession,
    agent_id: str,
    action: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Append an audit row. Part of the caller's transaction; the caller commits."""
    db.add(AgentActivity(agent_id=agent_id, action=action, details=details))


async def recent_activity(db: AsyncSession, agent_id: str, limit: int = 10) -> list[AgentActivity]:
    result = await db.execute(
        select(AgentActivity)
        .where(AgentActivity.agent_id == agent_id)
        .order_by(AgentActivity.created_at.desc(), AgentActivity.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
