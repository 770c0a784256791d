"""
Gateway primitives shared by every donation processor adapter.

Adapters translate each processor's envelope into these shapes so the rest
of the pipeline never inspects raw processor JSON.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pbd.errors import GatewayResponseError, GatewayTransportError, PlatformNotSupportedError

log = logging.getLogger(__name__)

_LOCALE_RE = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")


class DonationOutcome(enum.Enum):
    ACCEPTED = "accepted"
    PENDING = "pending"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GatewaySettings:
    """Explicit per-platform configuration, built from Flask config."""

    platform: str
    api_key: str
    api_url: str
    checkout_url: str
    return_url: str
    currency: str
    timeout: float = 15.0
    max_retries: int = 2


@dataclass(frozen=True)
class OrganizationDetails:
    organization_id: str
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    profile_url: Optional[str] = None
    registration_number: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class DonationRecord:
    donation_id: str
    reference: str
    status: DonationOutcome
    raw_status: str = ""
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    donor_name: Optional[str] = None
    donation_date: Optional[str] = None
    organization_id: Optional[str] = None


@dataclass(frozen=True)
class DonationLookup:
    found: bool
    donation: Optional[DonationRecord] = None

    @classmethod
    def not_found(cls) -> "DonationLookup":
        return cls(found=False, donation=None)


@dataclass(frozen=True)
class FundraiserPage:
    title: str
    short_name: str
    url: str
    owner: str
    organization_id: Optional[str]
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    raised_amount: Optional[Decimal] = None
    target_amount: Optional[Decimal] = None
    summary: str = ""


def parse_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None


def format_amount(amount: Decimal) -> str:
    """150 -> "150", 12.5 -> "12.50" (processors reject float noise)."""
    q = Decimal(amount).quantize(Decimal("0.01"))
    if q == q.to_integral_value():
        return str(int(q))
    return f"{q:.2f}"


def normalize_locale(raw: Any, default: str = "en") -> str:
    """Language tag for exit-URL paths: "en" or "en-GB"; anything else falls back."""
    value = str(raw or "").strip()
    return value if _LOCALE_RE.match(value) else default


def make_session(retries: int, user_agent: str = "PoweredByDonation/1.0") -> requests.Session:
    sess = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=0.4,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    sess.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
    )
    return sess


class GatewayClient:
    """
    Base adapter. Subclasses set ``platform`` and implement the four
    processor operations; ``_get_json`` centralizes the split between
    "not found" (returns None) and transport failure (raises).
    """

    platform: str = ""
    supports_reconciliation: bool = False

    def __init__(self, settings: GatewaySettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or make_session(settings.max_retries)

    # ---- processor operations -------------------------------------------
    def lookup_organization(self, organization_id: str) -> Optional[OrganizationDetails]:
        raise NotImplementedError

    def search_organizations(self, query: str, max_results: int = 20) -> List[OrganizationDetails]:
        raise NotImplementedError

    def get_donation_by_reference(self, reference: str) -> DonationLookup:
        raise NotImplementedError

    def build_donation_url(self, organization_id: str, amount: Decimal, reference: str) -> str:
        raise NotImplementedError

    def search_fundraisers(self, query: str, max_results: int = 20) -> List[FundraiserPage]:
        raise PlatformNotSupportedError(
            f"Fundraiser search is not supported for {self.platform}",
            details={"platform": self.platform},
        )

    def validate_organization_id(self, organization_id: str) -> bool:
        return bool((organization_id or "").strip())

    # ---- HTTP ------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.settings.api_url}{path}"

    def _get_json(self, path: str, params: Optional[dict] = None) -> Optional[Any]:
        url = self._url(path)
        try:
            resp = self.session.get(url, params=params, timeout=self.settings.timeout)
        except requests.RequestException as e:
            raise GatewayTransportError(
                f"{self.platform} request failed: {type(e).__name__}",
                details=str(e)[:300],
            ) from e

        log.debug("%s GET %s -> %s", self.platform, path, resp.status_code)

        if resp.status_code == 404:
            return None

        if not (200 <= resp.status_code < 300):
            raise GatewayTransportError(
                f"{self.platform} API error (status {resp.status_code})",
                http_status=resp.status_code,
                details=(resp.text or "")[:300],
            )

        try:
            return resp.json()
        except ValueError as e:
            raise GatewayResponseError(
                f"{self.platform} returned non-JSON body",
                http_status=resp.status_code,
                details=(resp.text or "")[:300],
            ) from e

    def describe(self) -> dict:
        return {
            "platform": self.platform,
            "apiUrl": self.settings.api_url,
            "apiKeyPresent": bool(self.settings.api_key),
            "reconciles": self.supports_reconciliation,
        }
