"""
Every.org adapter.

Organization lookup and redirect construction only. Every.org exposes no
donation-by-reference lookup, so requests created here are never reconciled
by the poller and resolve through the return confirmation or a timeout.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from pbd.errors import GatewayResponseError, PlatformNotSupportedError
from pbd.models.donation_request import Platform

from .base import DonationLookup, GatewayClient, OrganizationDetails, format_amount

log = logging.getLogger(__name__)


class EveryOrgClient(GatewayClient):
    platform = Platform.EVERY_ORG
    supports_reconciliation = False

    def _params(self, **extra: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {"apiKey": self.settings.api_key}
        params.update(extra)
        return params

    def lookup_organization(self, organization_id: str) -> Optional[OrganizationDetails]:
        slug = quote(str(organization_id).strip(), safe="")
        data = self._get_json(f"/nonprofit/{slug}", params=self._params())
        if data is None:
            return None
        nonprofit = (data.get("data") or {}).get("nonprofit") if isinstance(data, dict) else None
        if not isinstance(nonprofit, dict):
            raise GatewayResponseError("Every.org nonprofit payload missing 'data.nonprofit'")
        return self._organization(nonprofit, fallback_id=str(organization_id))

    def search_organizations(self, query: str, max_results: int = 20) -> List[OrganizationDetails]:
        data = self._get_json(
            f"/search/{quote(query.strip(), safe='')}",
            params=self._params(take=int(max_results)),
        )
        if not data or not isinstance(data, dict):
            return []
        return [self._organization(n) for n in data.get("nonprofits") or [] if isinstance(n, dict)]

    @staticmethod
    def _organization(data: Dict[str, Any], fallback_id: str = "") -> OrganizationDetails:
        tags = data.get("tags") or []
        return OrganizationDetails(
            organization_id=str(data.get("primarySlug") or data.get("slug") or fallback_id),
            name=str(data.get("name") or "").strip(),
            description=data.get("description") or None,
            logo_url=data.get("logoUrl") or None,
            category=str(tags[0]) if tags else None,
            website=data.get("websiteUrl") or None,
            profile_url=data.get("profileUrl") or None,
            registration_number=data.get("ein") or None,
            country=None,
        )

    def get_donation_by_reference(self, reference: str) -> DonationLookup:
        raise PlatformNotSupportedError("Every.org does not support donation lookup by reference")

    def build_donation_url(self, organization_id: str, amount: Decimal, reference: str, **_: Any) -> str:
        s = self.settings
        params = urlencode(
            [
                ("amount", format_amount(amount)),
                ("frequency", "ONCE"),
                ("partner_donation_id", reference),
                ("success_url", f"{s.return_url}/en/donation-success?reference={reference}"),
            ]
        )
        return f"{s.checkout_url}/{quote(str(organization_id), safe='')}#/donate?{params}"
