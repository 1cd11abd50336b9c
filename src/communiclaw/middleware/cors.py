"""CORS for the community dashboard."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from communiclaw.config import Settings

# Agents authenticate with their own key headers and pass the solved challenge token.
ALLOWED_HEADERS = [
    "Authorization",
    "Content-Type",
    "X-Request-Id",
    "X-Api-Key",
    "X-Agent-Key",
    "X-Challenge-Token",
]
EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=ALLOWED_HEADERS,
        expose_headers=EXPOSED_HEADERS,
    )
