"""Pydantic schemas for the agent API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AgentRegisterRequest(BaseModel):
    agent_name: str = Field(min_length=1, max_length=64)


class AgentUpdateRequest(BaseModel):
    is_active: bool | None = None
    agent_name: str | None = Field(default=None, max_length=64)


class AgentActivityResponse(BaseModel):
    action: str
    details: dict[str, Any] | None
    created_at: datetime


class AgentResponse(BaseModel):
    id: str
    name: str
    key_prefix: str
    is_active: bool
    last_challenge_at: datetime | None
    last_active_at: datetime | None
    request_count: int
    created_at: datetime
    activity: list[AgentActivityResponse] = []


class AgentKeyResponse(BaseModel):
    """Returned once on registration or rotation. The key is never retrievable again."""

    agent: AgentResponse
    api_key: str


class ChallengeResponse(BaseModel):
    challenge_id: str
    question: str
    options: dict[str, str]
    expires_at: datetime
    instructions: str


class SolveRequest(BaseModel):
    challenge_id: str
    answer: str = Field(max_length=8)


class SolveResponse(BaseModel):
    correct: bool
    challenge_token: str | None = None
    expires_at: datetime | None = None
    message: str


class ActiveTokenResponse(BaseModel):
    token: str
    expires_at: datetime


class ChallengeStatusResponse(BaseModel):
    can_request_challenge: bool
    next_challenge_available_at: datetime | None
    active_token: ActiveTokenResponse | None
    how_to_play: dict[str, str]
