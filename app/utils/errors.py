"""Standardized error payloads and the domain error hierarchy."""
from typing import Any

from fastapi import HTTPException, status


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class DomainError(HTTPException):
    """Base class for errors surfaced by the escrow core.

    Subclasses fix the HTTP status; the payload always follows ``error_response``
    so the application-wide handler can render it unchanged.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(
            status_code=type(self).status_code,
            detail=error_response(self.code, message, details),
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class IllegalTransition(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "ILLEGAL_TRANSITION"


class Conflict(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class InvalidRequest(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "INVALID_REQUEST"


class ProviderError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "PROVIDER_ERROR"


class SignatureMismatch(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "SIGNATURE_INVALID"


class OriginRejected(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "ORIGIN_REJECTED"


class TransientError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "TRANSIENT"


__all__ = [
    "error_response",
    "DomainError",
    "NotFound",
    "Forbidden",
    "IllegalTransition",
    "Conflict",
    "InvalidRequest",
    "ProviderError",
    "SignatureMismatch",
    "OriginRejected",
    "TransientError",
]
