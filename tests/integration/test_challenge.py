"""Integration tests for the agent challenge gate."""

from __future__ import annotations

import random
from datetime import timedelta

import pytest
import pytest_asyncio

from communiclaw.agents.challenge import (
    consume_token,
    get_challenge_status,
    request_challenge,
    solve_challenge,
)
from communiclaw.agents.trivia import get_question
from communiclaw.errors import (
    AuthorizationError,
    IncorrectAnswerError,
    NotFoundError,
    RateLimitedError,
    StateError,
)
from communiclaw.timeutils import as_utc, utcnow


def _wrong(answer: str) -> str:
    return next(letter for letter in "ABCD" if letter != answer)


@pytest_asyncio.fixture
async def agent(factory):
    member = await factory.user()
    agent, _ = await factory.agent(member)
    return agent


class TestRequestChallenge:
    async def test_issues_question_and_starts_cooldown(self, db_session, agent) -> None:
        now = utcnow()
        challenge, question = await request_challenge(db_session, agent, now=now, rng=random.Random(1))

        assert get_question(challenge.question_id) == question
        assert challenge.answer == question.answer
        assert challenge.solved is False
        assert as_utc(challenge.expires_at) == now + timedelta(minutes=10)
        assert as_utc(agent.last_challenge_at) == now

    async def test_cooldown(self, db_session, agent) -> None:
        now = utcnow()
        await request_challenge(db_session, agent, now=now)

        with pytest.raises(RateLimitedError) as exc_info:
            await request_challenge(db_session, agent, now=now + timedelta(seconds=10))
        assert exc_info.value.retry_after_seconds == 290
        assert exc_info.value.status_code == 429

        challenge, _ = await request_challenge(db_session, agent, now=now + timedelta(seconds=301))
        assert challenge.id

    async def test_cooldown_applies_even_if_never_answered(self, db_session, agent) -> None:
        now = utcnow()
        await request_challenge(db_session, agent, now=now)
        with pytest.raises(RateLimitedError):
            await request_challenge(db_session, agent, now=now + timedelta(seconds=299))


class TestSolveChallenge:
    async def test_correct_answer_unlocks_token(self, db_session, agent) -> None:
        now = utcnow()
        challenge, _ = await request_challenge(db_session, agent, now=now)

        solved = await solve_challenge(db_session, agent, challenge.id, challenge.answer.lower(), now=now)

        assert solved.solved is True
        assert solved.used is False
        assert solved.token

    async def test_wrong_answer(self, db_session, agent) -> None:
        now = utcnow()
        challenge, question = await request_challenge(db_session, agent, now=now)

        with pytest.raises(IncorrectAnswerError) as exc_info:
            await solve_challenge(db_session, agent, challenge.id, _wrong(challenge.answer), now=now)

        assert exc_info.value.details["correct"] is False
        assert question.explanation in exc_info.value.message
        assert f"The correct answer was {challenge.answer}" in exc_info.value.message

    async def test_expired_challenge_rejects_correct_answer(self, db_session, agent) -> None:
        now = utcnow()
        challenge, _ = await request_challenge(db_session, agent, now=now)

        with pytest.raises(StateError, match="expired") as exc_info:
            await solve_challenge(
                db_session, agent, challenge.id, challenge.answer, now=now + timedelta(minutes=10, seconds=1)
            )
        assert exc_info.value.details["expired"] is True

    async def test_cannot_solve_twice(self, db_session, agent) -> None:
        now = utcnow()
        challenge, _ = await request_challenge(db_session, agent, now=now)
        await solve_challenge(db_session, agent, challenge.id, challenge.answer, now=now)

        with pytest.raises(NotFoundError):
            await solve_challenge(db_session, agent, challenge.id, challenge.answer, now=now)

    async def test_other_agents_challenge_is_not_found(self, factory, db_session, agent) -> None:
        other, _ = await factory.agent(await factory.user(), "other")
        challenge, _ = await request_challenge(db_session, agent)

        with pytest.raises(NotFoundError):
            await solve_challenge(db_session, other, challenge.id, challenge.answer)


class TestConsumeToken:
    async def _solved(self, db_session, agent, now):
        challenge, _ = await request_challenge(db_session, agent, now=now)
        return await solve_challenge(db_session, agent, challenge.id, challenge.answer, now=now)

    async def test_single_use(self, db_session, agent) -> None:
        now = utcnow()
        solved = await self._solved(db_session, agent, now)

        await consume_token(db_session, agent, solved.token, now=now)
        await db_session.commit()

        with pytest.raises(AuthorizationError, match="already used"):
            await consume_token(db_session, agent, solved.token, now=now)

    async def test_missing_token_points_at_challenge(self, db_session, agent) -> None:
        with pytest.raises(AuthorizationError) as exc_info:
            await consume_token(db_session, agent, None)
        assert exc_info.value.details["challenge_required"] is True
        assert exc_info.value.details["challenge_endpoint"] == "/api/v1/agent/challenge"

    async def test_unknown_or_unsolved_token(self, db_session, agent) -> None:
        now = utcnow()
        challenge, _ = await request_challenge(db_session, agent, now=now)

        with pytest.raises(AuthorizationError, match="Invalid challenge token"):
            await consume_token(db_session, agent, challenge.token, now=now)
        with pytest.raises(AuthorizationError, match="Invalid challenge token"):
            await consume_token(db_session, agent, "not-a-token", now=now)

    async def test_expired_token(self, db_session, agent) -> None:
        now = utcnow()
        solved = await self._solved(db_session, agent, now)

        with pytest.raises(AuthorizationError, match="expired"):
            await consume_token(db_session, agent, solved.token, now=now + timedelta(minutes=11))

    async def test_token_bound_to_agent(self, factory, db_session, agent) -> None:
        now = utcnow()
        solved = await self._solved(db_session, agent, now)
        other, _ = await factory.agent(await factory.user(), "other")

        with pytest.raises(AuthorizationError, match="Invalid challenge token"):
            await consume_token(db_session, other, solved.token, now=now)


class TestChallengeStatus:
    async def test_status_projection(self, db_session, agent) -> None:
        now = utcnow()
        status = await get_challenge_status(db_session, agent, now=now)
        assert status.can_request_challenge is True
        assert status.next_challenge_available_at is None
        assert status.active_token is None

        challenge, _ = await request_challenge(db_session, agent, now=now)
        status = await get_challenge_status(db_session, agent, now=now + timedelta(seconds=1))
        assert status.can_request_challenge is False
        assert status.next_challenge_available_at == now + timedelta(minutes=5)
        assert status.active_token is None

        await solve_challenge(db_session, agent, challenge.id, challenge.answer, now=now)
        status = await get_challenge_status(db_session, agent, now=now + timedelta(minutes=5))
        assert status.can_request_challenge is True
        assert status.active_token is not None
        assert status.active_token.id == challenge.id

        status = await get_challenge_status(db_session, agent, now=now + timedelta(minutes=11))
        assert status.active_token is None
