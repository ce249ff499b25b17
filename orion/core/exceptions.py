"""Common exception helpers for the backend services."""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base exception for application specific errors."""

    status_code = 500
    error_code = "app_error"
    default_detail = "An unexpected error occurred."

    def __init__(self, detail: str | None = None, *, extra: dict[str, Any] | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail
        self.extra = extra or {}


class DomainError(AppError):
    """Normalized domain error surfaced to API handlers."""


class BadRequestError(DomainError):
    status_code = 400
    error_code = "bad_request"
    default_detail = "Invalid request."


class NotFoundError(DomainError):
    status_code = 404
    error_code = "not_found"
    default_detail = "Resource not found."


class BadGatewayError(DomainError):
    status_code = 502
    error_code = "bad_gateway"
    default_detail = "Upstream service failed."


class TransportError(BadGatewayError):
    """Network or HTTP failure talking to the printer backend."""

    error_code = "transport_error"
    default_detail = "Printer backend unreachable."


class ActionFailedError(BadGatewayError):
    """A print control action was rejected or failed."""

    error_code = "action_failed"
    default_detail = "Printer action failed."


class UnsupportedCapabilityError(DomainError):
    status_code = 501
    error_code = "unsupported"
    default_detail = "Operation not supported by this backend."


class StreamUnsupportedError(UnsupportedCapabilityError):
    """Backend cannot push status events."""

    error_code = "stream_unsupported"
    default_detail = "Status streaming not supported by this backend."
