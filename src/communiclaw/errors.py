"""Domain exceptions with their HTTP status codes.

Services raise these; the global handlers in ``communiclaw.middleware.error_handler``
render them as ``{"error": message, **details}``.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base exception for all expected application errors."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any) -> None:  # noqa: ANN401
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = 400


class StateError(AppError):
    """Campaign or challenge is not in a state that allows the operation."""

    status_code = 400


class CapacityError(AppError):
    """No spots or supply remaining."""

    status_code = 400


class IncorrectAnswerError(AppError):
    """Challenge answer did not match."""

    status_code = 400

    def __init__(self, explanation: str, correct_answer: str) -> None:
        super().__init__(
            f"Wrong answer! {explanation} The correct answer was {correct_answer}. "
            "Request a new challenge (cooldown applies).",
            correct=False,
        )


class AuthError(AppError):
    """Missing or invalid credential."""

    status_code = 401


class AuthorizationError(AppError):
    """Authenticated but not permitted."""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: object | None = None, message: str | None = None) -> None:
        if message is None:
            message = f"{entity_type} not found" if entity_id is None else f"{entity_type} {entity_id} not found"
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(AppError):
    """Duplicate entry, slug, wallet or a lost concurrent update."""

    status_code = 409


class RateLimitedError(AppError):
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message, retry_after_seconds=retry_after_seconds)
        self.retry_after_seconds = retry_after_seconds


class UpstreamUnavailableError(AppError):
    """Every upstream dependency (e.g. all price sources) failed."""

    status_code = 503


class InternalError(AppError):
    status_code = 500
