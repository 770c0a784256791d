from __future__ import annotations

import secrets
from typing import Callable

from pbd.errors import PlatformNotSupportedError, ReferenceGenerationError
from pbd.models.donation_request import Platform

PLATFORM_TAGS = {
    Platform.JUSTGIVING: "JG",
    Platform.EVERY_ORG: "EO",
}

TOKEN_BYTES = 8  # 16 hex chars


def _default_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


class ReferenceGenerator:
    """
    Mints ``PD-<TAG>-<16 upper hex>`` references. Uniqueness across the
    table is enforced by the ``reference_id`` unique constraint; callers
    retry on collision.
    """

    def __init__(self, token_factory: Callable[[], str] = _default_token) -> None:
        self._token = token_factory

    def generate(self, platform: str) -> str:
        tag = PLATFORM_TAGS.get(platform)
        if tag is None:
            raise PlatformNotSupportedError(f"No reference prefix for platform '{platform}'")
        try:
            token = str(self._token() or "").strip().upper()
        except Exception as e:
            raise ReferenceGenerationError(details=str(e)) from e
        if not token:
            raise ReferenceGenerationError("Random token source returned nothing")
        return f"PD-{tag}-{token}"

