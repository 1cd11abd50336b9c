"""Agent API: registration and key management for owners, challenge flow for agents."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents import challenge as challenge_engine
from communiclaw.agents.schemas import (
    ActiveTokenResponse,
    AgentActivityResponse,
    AgentKeyResponse,
    AgentRegisterRequest,
    AgentResponse,
    AgentUpdateRequest,
    ChallengeResponse,
    ChallengeStatusResponse,
    SolveRequest,
    SolveResponse,
)
from communiclaw.agents.service import (
    get_agent_for_user,
    recent_activity,
    register_agent,
    rotate_key,
    update_agent,
)
from communiclaw.auth.dependencies import get_current_agent, get_current_user
from communiclaw.campaigns.schemas import CampaignResponse, campaign_response
from communiclaw.database import get_session
from communiclaw.db.models import Agent, Campaign, CampaignStatus, User
from communiclaw.timeutils import as_utc

router = APIRouter(prefix="/api/v1/agent", tags=["Agent"])

_SOLVE_INSTRUCTIONS = (
    "Submit your answer to POST /api/v1/agent/challenge/solve with "
    "{ challenge_id, answer: 'A'|'B'|'C'|'D' }. A correct answer grants a one-time "
    "entry token valid until the challenge expires."
)

_HOW_TO_PLAY = {
    "step1": "POST /api/v1/agent/challenge (with X-Api-Key header) to receive a trivia question",
    "step2": "POST /api/v1/agent/challenge/solve with { challenge_id, answer: 'A'|'B'|'C'|'D' }",
    "step3": "On a correct answer, receive a challenge_token",
    "step4": "Send 'X-Challenge-Token: {token}' when entering giveaways or allowlists",
    "note": "One challenge every 5 minutes. One token per entry. Get it right on the first try!",
}


async def _agent_response(db: AsyncSession, agent: Agent) -> AgentResponse:
    activity = await recent_activity(db, agent.id)
    return AgentResponse(
        id=agent.id,
        name=agent.name,
        key_prefix=agent.key_prefix,
        is_active=agent.is_active,
        last_challenge_at=as_utc(agent.last_challenge_at),
        last_active_at=as_utc(agent.last_active_at),
        request_count=agent.request_count,
        created_at=as_utc(agent.created_at),
        activity=[
            AgentActivityResponse(action=a.action, details=a.details, created_at=as_utc(a.created_at))
            for a in activity
        ],
    )


# ---------------------------------------------------------------------------
# Owner-facing agent management (user JWT)
# ---------------------------------------------------------------------------


@router.get("", response_model=AgentResponse | None)
async def get_my_agent(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AgentResponse | None:
    agent = await get_agent_for_user(db, user.id)
    if agent is None:
        return None
    return await _agent_response(db, agent)


@router.post("", response_model=AgentKeyResponse, status_code=201)
async def create_agent(
    body: AgentRegisterRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AgentKeyResponse:
    """Register the user's agent. Only one agent per user."""
    agent, api_key = await register_agent(db, user.id, body.agent_name)
    return AgentKeyResponse(agent=await _agent_response(db, agent), api_key=api_key)


@router.patch("", response_model=AgentResponse)
async def patch_agent(
    body: AgentUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AgentResponse:
    agent = await update_agent(db, user.id, is_active=body.is_active, name=body.agent_name)
    return await _agent_response(db, agent)


@router.delete("", response_model=AgentKeyResponse)
async def regenerate_agent_key(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AgentKeyResponse:
    """Rotate the API key. The previous key is invalid immediately."""
    agent, api_key = await rotate_key(db, user.id)
    return AgentKeyResponse(agent=await _agent_response(db, agent), api_key=api_key)


# ---------------------------------------------------------------------------
# Agent-facing endpoints (API key)
# ---------------------------------------------------------------------------


@router.post("/challenge", response_model=ChallengeResponse)
async def request_challenge(
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge, question = await challenge_engine.request_challenge(db, agent)
    return ChallengeResponse(
        challenge_id=challenge.id,
        question=question.question,
        options=question.options,
        expires_at=as_utc(challenge.expires_at),
        instructions=_SOLVE_INSTRUCTIONS,
    )


@router.post("/challenge/solve", response_model=SolveResponse)
async def solve_challenge(
    body: SolveRequest,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_session),
) -> SolveResponse:
    challenge = await challenge_engine.solve_challenge(db, agent, body.challenge_id, body.answer)
    return SolveResponse(
        correct=True,
        challenge_token=challenge.token,
        expires_at=as_utc(challenge.expires_at),
        message=(
            "Challenge solved! Include this token as header 'X-Challenge-Token' in your "
            "giveaway/allowlist entry request. Token is single-use."
        ),
    )


@router.get("/challenge/status", response_model=ChallengeStatusResponse)
async def challenge_status(
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_session),
) -> ChallengeStatusResponse:
    status = await challenge_engine.get_challenge_status(db, agent)
    active = status.active_token
    return ChallengeStatusResponse(
        can_request_challenge=status.can_request_challenge,
        next_challenge_available_at=status.next_challenge_available_at,
        active_token=(
            ActiveTokenResponse(token=active.token, expires_at=as_utc(active.expires_at)) if active else None
        ),
        how_to_play=_HOW_TO_PLAY,
    )


@router.get("/campaigns", response_model=list[CampaignResponse])
async def list_agent_campaigns(
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_session),
) -> list[CampaignResponse]:
    """Active campaigns that accept agent entries."""
    result = await db.execute(
        select(Campaign)
        .where(Campaign.status == CampaignStatus.ACTIVE.value, Campaign.is_agent_eligible.is_(True))
        .order_by(Campaign.ends_at.asc())
        .limit(50)
    )
    return [campaign_response(c) for c in result.scalars().all()]
