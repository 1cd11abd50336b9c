"""FastAPI authentication dependencies.

Two kinds of callers exist: users holding an identity-provider JWT, and agents
holding a ``ccl_`` API key (sent as ``X-Api-Key``, ``X-Agent-Key`` or
``Authorization: Bearer ccl_...``).
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from communiclaw.agents.keys import KEY_PREFIX
from communiclaw.agents.service import authenticate_agent
from communiclaw.auth.jwt import verify_token
from communiclaw.database import get_session
from communiclaw.db.models import Agent, User
from communiclaw.errors import AuthError, AuthorizationError


@dataclass
class Caller:
    """The authenticated principal of a request."""

    user: User
    agent: Agent | None = None

    @property
    def is_agent(self) -> bool:
        return self.agent is not None


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def extract_agent_key(request: Request) -> str | None:
    """Return the raw agent key from any of the accepted headers."""
    key = request.headers.get("X-Api-Key") or request.headers.get("X-Agent-Key")
    if key:
        return key.strip()
    token = _bearer_token(request)
    if token and token.startswith(KEY_PREFIX):
        return token
    return None


async def _user_from_jwt(db: AsyncSession, token: str) -> User:
    try:
        payload = verify_token(token, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise AuthError(str(e)) from e

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthError("User not found")
    if user.is_banned:
        raise AuthorizationError("Account is banned")
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the bearer JWT, return the User. Raises 401/403."""
    token = _bearer_token(request)
    if token is None or token.startswith(KEY_PREFIX):
        raise AuthError("Unauthorized")
    return await _user_from_jwt(db, token)


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user


async def get_current_agent(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> Agent:
    """Resolve the agent behind the request's API key. Raises 401."""
    raw_key = extract_agent_key(request)
    if not raw_key:
        raise AuthError("Missing API key")
    return await authenticate_agent(db, raw_key)


async def get_caller(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> Caller:
    """Accept either an agent key or a user JWT."""
    raw_key = extract_agent_key(request)
    if raw_key:
        agent = await authenticate_agent(db, raw_key)
        result = await db.execute(select(User).where(User.id == agent.user_id))
        user = result.scalar_one()
        if user.is_banned:
            raise AuthorizationError("Account is banned")
        return Caller(user=user, agent=agent)

    token = _bearer_token(request)
    if token is None:
        raise AuthError("Unauthorized")
    return Caller(user=await _user_from_jwt(db, token))
