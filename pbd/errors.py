"""
Error taxonomy for the donation pipeline.

Every error carries the HTTP status it maps to so the app-level handler can
render the JSON error shape ``{"ok": false, "error": ..., "details": ...}``
without knowing about individual error types.
"""

from __future__ import annotations

from typing import Any, Optional


class DonationError(Exception):
    status_code = 500
    default_message = "Donation service error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message, "details": self.details}


class ValidationError(DonationError):
    """Malformed or missing input; nothing was written."""

    status_code = 400
    default_message = "Invalid request"


class NotFoundError(DonationError):
    status_code = 404
    default_message = "Not found"


class InvalidTransitionError(DonationError):
    status_code = 409
    default_message = "Transition not allowed"


class PlatformNotSupportedError(DonationError):
    status_code = 501
    default_message = "Donation platform not supported"


class GatewayTransportError(DonationError):
    """
    The external processor could not be reached or answered with a non-2xx
    status other than "not found". Request state must be left untouched.
    """

    status_code = 502
    default_message = "Donation gateway unavailable"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        http_status: Optional[int] = None,
        details: Any = None,
    ) -> None:
        self.http_status = http_status
        super().__init__(message, details=details)


class GatewayResponseError(GatewayTransportError):
    """The processor answered 2xx with a body we could not decode."""

    default_message = "Donation gateway returned an unreadable response"


class ReferenceGenerationError(DonationError):
    status_code = 500
    default_message = "Failed to generate donation reference"


class ReferenceCollisionError(ReferenceGenerationError):
    default_message = "Donation reference collided too many times"


__all__ = [
    "DonationError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "PlatformNotSupportedError",
    "GatewayTransportError",
    "GatewayResponseError",
    "ReferenceGenerationError",
    "ReferenceCollisionError",
]
