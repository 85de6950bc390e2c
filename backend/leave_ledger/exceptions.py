from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from leave_ledger.schemas.validation import ValidationIssue


class ErrorIssue(BaseModel):
    """A single structured problem attached to an error response."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int
    errors: list[ErrorIssue] | None = None


class AppError(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationFailed(AppError):
    """A request failed validation; carries every problem found, not just the first."""

    def __init__(self, errors: list[ValidationIssue], message: str = "Request failed validation") -> None:
        self.errors = list(errors)
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class PolicyViolation(ValidationFailed):
    """Every problem found is an eligibility or documentation rule."""


class Overlap(ValidationFailed):
    """The only problem is an intersection with a pending or approved request."""

    def __init__(self, errors: list[ValidationIssue], message: str = "Request overlaps an existing request") -> None:
        super().__init__(errors, message)
        self.status_code = status.HTTP_409_CONFLICT


def validation_failure(errors: list[ValidationIssue]) -> ValidationFailed:
    """Pick the most specific error for a failed validation."""
    codes = {issue.code for issue in errors}
    if codes == {"OVERLAP"}:
        return Overlap(errors)
    if codes == {"POLICY_VIOLATION"}:
        return PolicyViolation(errors, "Request breaks leave policy")
    return ValidationFailed(errors)


class InsufficientBalance(AppError):
    """A debit would drive available balance below zero."""

    def __init__(self, message: str = "Insufficient leave balance") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class InvalidTransition(AppError):
    """State machine misuse."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class AlreadyDecided(AppError):
    """The approval level was already decided."""

    def __init__(self, message: str = "Approval level has already been decided") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class NotFound(AppError):
    """Referenced entity does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND)


class Unauthorized(AppError):
    """Actor is not allowed to perform the operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN)


class Conflict(AppError):
    """Concurrent modification detected. Safe for the caller to retry."""

    def __init__(self, message: str = "Concurrent update detected, please retry") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class ConcurrentUpdate(Conflict):
    """Lost a race on a row insert or conditional update; retried inside the engine."""


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    issues = None
    if isinstance(exc, ValidationFailed):
        issues = [ErrorIssue(code=issue.code, message=issue.message) for issue in exc.errors]
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
            errors=issues,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
