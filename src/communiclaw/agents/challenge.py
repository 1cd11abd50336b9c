"""Agent knowledge challenge: cooldown-limited trivia issuing single-use entry tokens.

Per-agent lifecycle::

    Idle --request (cooldown elapsed)--> Issued --correct answer--> Solved --token spent--> Used
    Issued/Solved --expiry--> Expired

Every transition is a conditional UPDATE so concurrent requests for the same
agent cannot both pass the cooldown, solve twice, or spend one token twice.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents.trivia import TriviaQuestion, get_question, pick_question
from communiclaw.config import get_settings
from communiclaw.db.models import Agent, Challenge
from communiclaw.errors import (
    AuthorizationError,
    IncorrectAnswerError,
    NotFoundError,
    RateLimitedError,
    StateError,
)
from communiclaw.timeutils import as_utc, utcnow

logger = structlog.get_logger()

CHALLENGE_ENDPOINT = "/api/v1/agent/challenge"


@dataclass
class ChallengeStatus:
    can_request_challenge: bool
    next_challenge_available_at: datetime | None
    active_token: Challenge | None


def _cooldown() -> timedelta:
    return timedelta(seconds=get_settings().challenge_cooldown_seconds)


def _expiry() -> timedelta:
    return timedelta(seconds=get_settings().challenge_expiry_seconds)


def _retry_after(last_challenge_at: datetime, now: datetime) -> int:
    remaining = (last_challenge_at + _cooldown() - now).total_seconds()
    return max(1, math.ceil(remaining))


def _rate_limited(retry_after: int) -> RateLimitedError:
    return RateLimitedError(
        f"Rate limited. You can request a new challenge in {retry_after} seconds.",
        retry_after_seconds=retry_after,
    )


async def request_challenge(
    db: AsyncSession,
    agent: Agent,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> tuple[Challenge, TriviaQuestion]:
    """Issue a new challenge, starting the cooldown whether or not it is ever answered."""
    now = now or utcnow()
    last = as_utc(agent.last_challenge_at)
    if last is not None and now - last < _cooldown():
        raise _rate_limited(_retry_after(last, now))

    # Claim the cooldown slot; a concurrent request that got here first wins.
    cutoff = now - _cooldown()
    claimed = await db.execute(
        update(Agent)
        .where(
            Agent.id == agent.id,
            or_(Agent.last_challenge_at.is_(None), Agent.last_challenge_at <= cutoff),
        )
        .values(last_challenge_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise _rate_limited(get_settings().challenge_cooldown_seconds)

    question = pick_question(rng)
    challenge = Challenge(
        agent_id=agent.id,
        question_id=question.id,
        answer=question.answer,
        expires_at=now + _expiry(),
        created_at=now,
    )
    db.add(challenge)
    await db.commit()
    await db.refresh(agent)

    logger.info("challenge_issued", agent_id=agent.id, challenge_id=challenge.id, question_id=question.id)
    return challenge, question


async def solve_challenge(
    db: AsyncSession,
    agent: Agent,
    challenge_id: str,
    answer: str,
    *,
    now: datetime | None = None,
) -> Challenge:
    """Grade an answer. A correct answer marks the challenge solved and unlocks its token."""
    now = now or utcnow()
    result = await db.execute(
        select(Challenge).where(
            Challenge.id == challenge_id,
            Challenge.agent_id == agent.id,
            Challenge.solved.is_(False),
            Challenge.used.is_(False),
        )
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFoundError("Challenge", message="Challenge not found, already solved, or already used")

    if now > as_utc(challenge.expires_at):
        raise StateError("Challenge expired. Request a new one.", expired=True)

    if (answer or "").strip().upper() != challenge.answer:
        question = get_question(challenge.question_id)
        explanation = question.explanation if question else "Incorrect answer."
        logger.info("challenge_failed", agent_id=agent.id, challenge_id=challenge.id)
        raise IncorrectAnswerError(explanation, challenge.answer)

    solved = await db.execute(
        update(Challenge)
        .where(
            Challenge.id == challenge.id,
            Challenge.solved.is_(False),
            Challenge.used.is_(False),
        )
        .values(solved=True)
        .execution_options(synchronize_session=False)
    )
    if solved.rowcount != 1:
        await db.rollback()
        raise NotFoundError("Challenge", message="Challenge not found, already solved, or already used")
    await db.commit()
    await db.refresh(challenge)

    logger.info("challenge_solved", agent_id=agent.id, challenge_id=challenge.id)
    return challenge


async def get_challenge_status(
    db: AsyncSession,
    agent: Agent,
    *,
    now: datetime | None = None,
) -> ChallengeStatus:
    """Read-only projection of the agent's cooldown and current usable token."""
    now = now or utcnow()
    last = as_utc(agent.last_challenge_at)
    next_available = last + _cooldown() if last is not None else None
    can_request = next_available is None or now >= next_available

    result = await db.execute(
        select(Challenge)
        .where(
            Challenge.agent_id == agent.id,
            Challenge.solved.is_(True),
            Challenge.used.is_(False),
            Challenge.expires_at > now,
        )
        .order_by(Challenge.created_at.desc())
        .limit(1)
    )
    return ChallengeStatus(
        can_request_challenge=can_request,
        next_challenge_available_at=None if can_request else next_available,
        active_token=result.scalar_one_or_none(),
    )


async def consume_token(
    db: AsyncSession,
    agent: Agent,
    token: str | None,
    *,
    now: datetime | None = None,
) -> None:
    """Spend a solved challenge token inside the caller's transaction.

    Does not commit: the token is marked used only if the gated action commits.
    """
    if not token:
        raise AuthorizationError(
            "Agents must complete a knowledge challenge before entering. "
            f"Call POST {CHALLENGE_ENDPOINT} to begin.",
            challenge_required=True,
            challenge_endpoint=CHALLENGE_ENDPOINT,
        )

    now = now or utcnow()
    spent = await db.execute(
        update(Challenge)
        .where(
            Challenge.token == token,
            Challenge.agent_id == agent.id,
            Challenge.solved.is_(True),
            Challenge.used.is_(False),
            Challenge.expires_at > now,
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    if spent.rowcount == 1:
        return

    result = await db.execute(
        select(Challenge)
        .where(Challenge.token == token, Challenge.agent_id == agent.id)
        .execution_options(populate_existing=True)
    )
    challenge = result.scalar_one_or_none()
    if challenge is None or not challenge.solved:
        raise AuthorizationError("Invalid challenge token")
    if challenge.used:
        raise AuthorizationError("Challenge token already used")
    raise AuthorizationError("Challenge token expired. Complete a new challenge.")
